"""
CSV generator for simulating Top and Bottom Gocator feed exports.
"""

import csv
import random
import argparse
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Tuple

TOP_HEADER = [
    'Shift', 'Top:Date', 'Top:Timestamp', 'Top:BoardCount',
    'Top:SquarenessDifference', 'Top:OverallPass'
]

BOTTOM_HEADER = [
    'Bot:Date', 'Bot:Timestamp', 'Bot:BoardCount',
    'Bot:BLB1_B1PushBack', 'Bot:BLB1_B3PushBack', 'Bot:BLB1MaxPushBackDist', 'Bot:BLB1Width',
    'Bot:TG1MinTunnelGapDist', 'Bot:BIB2TopOffsetDist', 'Bot:BIB2BottomOffsetDist',
    'Bot:TG2MinTunnelGapDist', 'Bot:BLB2Width',
    'Bot:BLB2_B1PushBack', 'Bot:BLB2_B3PushBack', 'Bot:BLB2MaxPushBackDist', 'Bot:Overall_Result'
]


def shift_for(moment: datetime) -> str:
    """Plant shift number: 1 is 06:00-14:00, 2 is 14:00-22:00, 3 is overnight."""
    if 6 <= moment.hour < 14:
        return '1'
    elif 14 <= moment.hour < 22:
        return '2'
    return '3'


def format_date(moment: datetime) -> str:
    return moment.strftime('%d-%b-%Y')


def format_time(moment: datetime) -> str:
    return moment.strftime('%H:%M:%S.%f')[:-3]


class CSVGenerator:
    """Generates matching Top and Bottom sensor exports for testing."""

    def __init__(self, seed: int = None):
        self.random = random.Random(seed)
        self.board_counter = 1

    def generate_top_row(self, moment: datetime, board: int) -> List[str]:
        squareness = round(self.random.uniform(0.0, 4.0), 2)
        overall_pass = 1 if squareness < 3.0 else 0

        return [
            shift_for(moment),
            format_date(moment),
            format_time(moment),
            str(board),
            str(squareness),
            str(overall_pass)
        ]

    def generate_bottom_row(self, moment: datetime, board: int) -> List[str]:
        measures = [round(self.random.uniform(0.0, 25.0), 2) for _ in range(12)]
        overall_result = 1 if self.random.random() < 0.9 else 0

        return (
            [format_date(moment), format_time(moment), str(board)]
            + [str(m) for m in measures]
            + [str(overall_result)]
        )

    def generate_rows(
        self,
        start: datetime,
        num_boards: int = 100,
        interval_seconds: float = 6.0,
        max_skew_seconds: float = 0.8,
        miss_rate: float = 0.05
    ) -> Tuple[List[List[str]], List[List[str]]]:
        """Generate Top and Bottom rows for the same run of boards.

        Each Bottom reading lags its Top reading by up to ``max_skew_seconds``;
        ``miss_rate`` of the boards are missing from one of the two sensors.
        """
        top_rows, bottom_rows = [], []

        for i in range(num_boards):
            board = self.board_counter
            self.board_counter += 1

            top_time = start + timedelta(seconds=i * interval_seconds)
            bottom_time = top_time + timedelta(seconds=self.random.uniform(0.0, max_skew_seconds))

            missing = self.random.random() < miss_rate
            drop_top = missing and self.random.random() < 0.5
            drop_bottom = missing and not drop_top

            if not drop_top:
                top_rows.append(self.generate_top_row(top_time, board))
            if not drop_bottom:
                bottom_rows.append(self.generate_bottom_row(bottom_time, board))

        return top_rows, bottom_rows

    def write_csv(self, output_path: Path, header: List[str], rows: List[List[str]]) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(header)
            writer.writerows(rows)

    def generate_feeds(
        self,
        top_folder: str,
        bottom_folder: str,
        start: datetime,
        num_boards: int = 100,
        **options
    ) -> Tuple[Path, Path]:
        """Write one Top and one Bottom 'values' export and return their paths."""
        top_rows, bottom_rows = self.generate_rows(start, num_boards, **options)
        stamp = start.strftime('%Y%m%d_%H%M%S')

        top_path = Path(top_folder) / f"Top_values_{stamp}.csv"
        bottom_path = Path(bottom_folder) / f"Bottom_values_{stamp}.csv"

        self.write_csv(top_path, TOP_HEADER, top_rows)
        self.write_csv(bottom_path, BOTTOM_HEADER, bottom_rows)

        return top_path, bottom_path


def main():
    """Main entry point for feed generation."""
    parser = argparse.ArgumentParser(description='Generate Top and Bottom Gocator feed CSVs for testing')
    parser.add_argument('--top', required=True, help='Top feed output folder')
    parser.add_argument('--bottom', required=True, help='Bottom feed output folder')
    parser.add_argument('--count', '-c', type=int, default=100, help='Number of boards to generate')
    parser.add_argument('--start', help="Run start, 'YYYY-MM-DD HH:MM:SS' (default: now)")
    parser.add_argument('--seed', type=int, help='Random seed')

    args = parser.parse_args()

    start = datetime.strptime(args.start, '%Y-%m-%d %H:%M:%S') if args.start else datetime.now()

    generator = CSVGenerator(seed=args.seed)
    top_path, bottom_path = generator.generate_feeds(args.top, args.bottom, start, args.count)

    print(f"✅ Generated {args.count} boards")
    print(f"   Top feed: {top_path}")
    print(f"   Bottom feed: {bottom_path}")


if __name__ == "__main__":
    main()
