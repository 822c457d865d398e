import csv
import os
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from gocator_report.ingestion.csv_processor import CSVProcessor, TOP_LAYOUT, BOTTOM_LAYOUT
from gocator_report.ingestion.feed_source import FeedSource
from gocator_report.ingestion.report_writer import ReportWriter, ReportLabel, artifact_name_for, label_from_row
from gocator_report.ingestion.stream_merger import merge
from gocator_report.tools.csv_generator import CSVGenerator, TOP_HEADER, BOTTOM_HEADER, shift_for


START = datetime(2025, 3, 7, 14, 5, 0)


class ReportWriterTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        generator = CSVGenerator(seed=7)
        top_path, bottom_path = generator.generate_feeds(
            self.root / 'top', self.root / 'bottom', START, num_boards=20, miss_rate=0.0
        )
        self.top = CSVProcessor(TOP_LAYOUT).parse_csv_content(top_path.read_bytes(), top_path.name)
        self.bottom = CSVProcessor(BOTTOM_LAYOUT).parse_csv_content(bottom_path.read_bytes(), bottom_path.name)
        self.merged = merge(self.top.rows, self.bottom.rows)
        self.writer = ReportWriter(str(self.root / 'combined'))

    def tearDown(self):
        self._tmp.cleanup()

    def test_report_is_named_from_shift_and_date(self):
        report_path = self.writer.write_report(self.merged, self.top, self.bottom)

        self.assertEqual(report_path.name, 'Gocator_Report_Shift_2_07-Mar-2025.csv')
        self.assertTrue(report_path.is_file())

    def test_report_header_and_rows(self):
        report_path = self.writer.write_report(self.merged, self.top, self.bottom)

        with open(report_path, newline='', encoding='utf-8') as f:
            rows = list(csv.reader(f))

        header = rows[0]
        self.assertEqual(header[:3], ['Top:Date', 'Top:Timestamp', 'Shift'])
        self.assertEqual(header[3:6], ['Top:BoardCount', 'Top:SquarenessDifference', 'Top:OverallPass'])
        self.assertEqual(header[6], 'Bot:BoardCount')
        self.assertEqual(header[-2:], ['Bot:Overall_Result', 'Assured_Result'])
        self.assertEqual(len(header), 3 + 3 + 14 + 1)

        self.assertEqual(len(rows) - 1, 20)
        for row in rows[1:]:
            self.assertEqual(len(row), len(header))
            self.assertEqual(row[3], row[6])  # same board on both sensors
            self.assertEqual(float(row[-1]), float(row[5]) * float(row[-2]))

    def test_read_label_round_trips_first_row(self):
        report_path = self.writer.write_report(self.merged, self.top, self.bottom)

        label = self.writer.read_label(report_path.name)

        self.assertEqual(label.date, '07-Mar-2025')
        self.assertEqual(label.shift, '2')
        self.assertEqual(label.started_at, START)

    def test_rerun_of_same_shift_replaces_report(self):
        first = self.writer.write_report(self.merged, self.top, self.bottom)
        second = self.writer.write_report(self.merged[:5], self.top, self.bottom)

        self.assertEqual(first, second)
        self.assertEqual(len(os.listdir(self.root / 'combined')), 1)

    def test_malformed_shift_writes_no_report(self):
        bad_top = self.merged[0].top.model_copy(update={'shift': '../../escaped'})
        bad_merge = [self.merged[0].model_copy(update={'top': bad_top})] + self.merged[1:]

        with self.assertRaises(ValueError):
            self.writer.write_report(bad_merge, self.top, self.bottom)

        self.assertEqual(list(self.root.rglob('Gocator_Report_*')), [])

    def test_empty_merge_is_rejected(self):
        with self.assertRaises(ValueError):
            self.writer.write_report([], self.top, self.bottom)

    def test_report_without_rows_has_no_label(self):
        (self.root / 'combined').mkdir(parents=True, exist_ok=True)
        (self.root / 'combined' / 'empty.csv').write_text('Top:Date,Top:Timestamp,Shift\n', encoding='utf-8')

        with self.assertRaises(ValueError):
            self.writer.read_label('empty.csv')


class LabelTests(unittest.TestCase):
    def test_artifact_name(self):
        self.assertEqual(
            artifact_name_for(ReportLabel(date='09-Mar-2025', shift='3')),
            'Gocator_Report_Shift_3_09-Mar-2025.csv'
        )

    def test_label_from_row_validates_timestamp(self):
        with self.assertRaises(ValueError):
            label_from_row(['09-Mar-2025', 'later', '3'])
        with self.assertRaises(ValueError):
            label_from_row(['09-Mar-2025'])

    def test_shift_with_path_characters_is_rejected(self):
        for shift in ('../../etc', '2/3', '2\\3', ''):
            with self.assertRaises(ValueError):
                label_from_row(['09-Mar-2025', '22:00:00.000', shift])

    def test_report_names_must_stay_in_the_output_folder(self):
        writer = ReportWriter('combined')

        for name in ('../report_state.json', 'sub/report.csv', '..\\report.csv', '..', ''):
            with self.assertRaises(ValueError):
                writer.artifact_path(name)

        self.assertEqual(
            writer.artifact_path('Gocator_Report_Shift_3_09-Mar-2025.csv'),
            Path('combined') / 'Gocator_Report_Shift_3_09-Mar-2025.csv'
        )


class FeedSourceTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.folder = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _touch(self, name: str, mtime: int) -> Path:
        path = self.folder / name
        path.write_text('x', encoding='utf-8')
        os.utime(path, (mtime, mtime))
        return path

    def test_newest_marker_file_wins(self):
        self._touch('Top_values_old.csv', 1_700_000_000)
        newest = self._touch('Top_VALUES_new.csv', 1_700_000_500)
        self._touch('Top_summary.csv', 1_700_000_900)
        self._touch('Top_values_newer.txt', 1_700_000_900)

        source = FeedSource('top', str(self.folder), marker='values')

        self.assertEqual(source.latest_file(), newest)
        path, content = source.read_latest()
        self.assertEqual((path, content), (newest, b'x'))

    def test_no_matching_file(self):
        self._touch('Top_summary.csv', 1_700_000_000)

        self.assertIsNone(FeedSource('top', str(self.folder), marker='values').read_latest())

    def test_missing_folder(self):
        source = FeedSource('bottom', str(self.folder / 'absent'), marker='values')
        self.assertIsNone(source.latest_file())


class CSVGeneratorTests(unittest.TestCase):
    def test_shift_boundaries(self):
        self.assertEqual(shift_for(datetime(2025, 3, 7, 5, 59)), '3')
        self.assertEqual(shift_for(datetime(2025, 3, 7, 6, 0)), '1')
        self.assertEqual(shift_for(datetime(2025, 3, 7, 14, 0)), '2')
        self.assertEqual(shift_for(datetime(2025, 3, 7, 22, 0)), '3')

    def test_seeded_generation_is_repeatable(self):
        first = CSVGenerator(seed=3).generate_rows(START, 30)
        second = CSVGenerator(seed=3).generate_rows(START, 30)
        self.assertEqual(first, second)

    def test_missing_boards_drop_out_of_the_merge(self):
        top_rows, bottom_rows = CSVGenerator(seed=11).generate_rows(START, 200, miss_rate=0.2)

        self.assertLess(len(top_rows) + len(bottom_rows), 400)
        top_boards = {r[3] for r in top_rows}
        bottom_boards = {r[2] for r in bottom_rows}

        with tempfile.TemporaryDirectory() as tmp:
            writer = CSVGenerator()
            top_path, bottom_path = Path(tmp) / 't.csv', Path(tmp) / 'b.csv'
            writer.write_csv(top_path, TOP_HEADER, top_rows)
            writer.write_csv(bottom_path, BOTTOM_HEADER, bottom_rows)

            top = CSVProcessor(TOP_LAYOUT).parse_csv_content(top_path.read_bytes())
            bottom = CSVProcessor(BOTTOM_LAYOUT).parse_csv_content(bottom_path.read_bytes())

        merged = merge(top.rows, bottom.rows)

        self.assertEqual(
            {format(m.top.values[0], 'g') for m in merged},
            {format(float(b), 'g') for b in top_boards & bottom_boards}
        )


if __name__ == '__main__':
    unittest.main()
