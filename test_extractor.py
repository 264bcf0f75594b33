import json
import unittest

from diagnostics import LAYOUT_UNKNOWN, SHEET_FAILED, START_NOT_FOUND
from extractor import (
    LAYOUTS,
    ExtractionResult,
    detect_layout,
    extract_rows,
    extract_sheet,
    get_layout,
    records_to_frame,
)
from beverage_manifest import BEVERAGE_MANIFEST
from crew_roster import CREW_ROSTER
from flight_timetable import FLIGHT_TIMETABLE
from header_table import HEADER_TABLE
from layouts import CLASS_AIRCRAFT_MENU, CYCLE_MENU, FLIGHT_MENU, MENU_BLOCK, Layout
from sheet_grid import Grid, MergedRegion, resolve_merges
from test_beverage_manifest import MANIFEST_ROWS
from test_crew_roster import ROSTER_ROWS
from test_flight_timetable import TIMETABLE_ROWS
from test_header_table import TISSUE_ROWS


FLIGHT_MENU_ROWS = [
    ["VIETNAM AIRLINES - FLIGHT MENU"],
    ["Uplift Ratio", "Component Description", "Quantity", "Remark"],
    ["BUSINESS CLASS", None, None, None],
    ["Dành cho tàu NEO 08:00<ETD<12:00", None, "MENU A1", None],
    [0.5, "Beef steak", 10, None],
    [None, "Salad", 10, "MENU B2"],
    ["ECONOMY CLASS", None, None, None],
    [1, "Sandwich", 100, "10:00<ETD<14:00"],
    ["Loaded By: ________"],
    ["Ghi chú: Thay đổi theo mùa"],
]
FLIGHT_MENU_MERGES = [MergedRegion(4, 5, 0, 0)]

CLASS_AIRCRAFT_ROWS = [
    ["Uplift Ratio", "Component Description", "Quantity", "Remark"],
    ["BUSINESS CLASS", None, None, None],
    ["A321 NEO", None, "MENU B1", "CYCLE 4"],
    [1, "Pho", 5, None],
    ["A321", None, "MENU B2", None],
    [1, "Com", 5, None],
    ["Ghi chú"],
]

CYCLE_MENU_ROWS = [
    ["MENU KHAI THÁC", None, "Class: Business", None, "Menu: MENU C3"],
    ["Uplift Ratio", "Name", "Unit", "Qty", "Remark"],
    [0.5, "Beef", "pcs", 10, None],
    [None, "CYCLE 2", None, None, "8-14 APR.2025"],
    [0.5, "Fish", "pcs", 12, None],
    [None, "Chips", "pcs", 12, None],
    ["Lưu ý: giao trước 2h"],
]

MENU_BLOCK_ROWS = [
    ["MENU A1", None, "CYCLE", "CYCLE 1"],
    ["Uplift Ratio", "Component", "Qty", "Remark"],
    ["Business", None, None, None],
    ["100%", "Steak", 1, None],
    ["MENU A2", None, "CYCLE", "CYCLE 2"],
    ["Economy", None, None, None],
    ["100%", "Noodles", 2, None],
    ["Ghi chú"],
]


class TestExtractRows(unittest.TestCase):
    def test_end_to_end_three_rows(self):
        rows = [
            ["CLASS A"],
            ["<cond> NEO 08:00<ETD<12:00", None, "MENU X1"],
            ["", "Chicken rice", "50", None],
        ]
        records = extract_rows(Grid(rows), FLIGHT_MENU)
        self.assertEqual(records, [{
            "Uplift Ratio": None,
            "Name": "Chicken rice",
            "Quantity": "50",
            "Remark": None,
            "class": "CLASS A",
            "AircraftType": "NEO",
            "MenuId": "X1",
            "StartTime": "08:00",
            "EndTime": "12:00",
            "Note": None,
        }])

    def test_accepts_layout_name(self):
        records = extract_rows(Grid([["CLASS A"], ["", "Rice", "1"]]), "flight_menu")
        self.assertEqual(records[0]["class"], "CLASS A")


class TestFlightMenuSheet(unittest.TestCase):
    def setUp(self):
        self.result = extract_sheet(Grid(FLIGHT_MENU_ROWS), "flight_menu", FLIGHT_MENU_MERGES, sheet_name="VN")

    def test_records(self):
        recs = self.result.records
        self.assertEqual([r["Name"] for r in recs], ["Beef steak", "Salad", "Sandwich"])
        self.assertEqual([r["Uplift Ratio"] for r in recs], ["50%", "50%", "100%"])
        self.assertEqual(recs[0]["class"], "BUSINESS CLASS")
        self.assertEqual(recs[0]["AircraftType"], "NEO")
        self.assertEqual(recs[0]["MenuId"], "A1")
        self.assertEqual((recs[0]["StartTime"], recs[0]["EndTime"]), ("08:00", "12:00"))
        self.assertEqual(recs[0]["Note"], "Ghi chú: Thay đổi theo mùa")

    def test_remark_overrides_apply_to_one_record(self):
        beef, salad, sandwich = self.result.records
        self.assertEqual(beef["MenuId"], "A1")
        self.assertEqual(salad["MenuId"], "B2")
        self.assertEqual(sandwich["MenuId"], "A1")
        self.assertEqual((sandwich["StartTime"], sandwich["EndTime"]), ("10:00", "14:00"))

    def test_group_header_resets_aircraft(self):
        sandwich = self.result.records[2]
        self.assertEqual(sandwich["class"], "ECONOMY CLASS")
        self.assertIsNone(sandwich["AircraftType"])

    def test_metadata_and_diagnostics(self):
        self.assertEqual(self.result.layout, "flight_menu")
        self.assertEqual(self.result.metadata["header_row"], 1)
        self.assertEqual(self.result.metadata["end_reason"], "keyword")
        self.assertEqual(self.result.diagnostics, [])

    def test_deterministic(self):
        again = extract_sheet(Grid(FLIGHT_MENU_ROWS), "flight_menu", FLIGHT_MENU_MERGES, sheet_name="VN")
        self.assertEqual(again.to_dict(), self.result.to_dict())

    def test_record_count_bounded_by_body_rows(self):
        self.assertLessEqual(len(self.result.records), len(FLIGHT_MENU_ROWS) - 2)

    def test_detected_without_layout(self):
        result = extract_sheet(Grid(FLIGHT_MENU_ROWS), merges=FLIGHT_MENU_MERGES)
        self.assertEqual(result.layout, "flight_menu")
        self.assertEqual(len(result.records), 3)

    def test_to_dict_is_json(self):
        payload = json.loads(json.dumps(self.result.to_dict()))
        self.assertEqual(payload["sheet"], "VN")
        self.assertEqual(len(payload["records"]), 3)

    def test_frame(self):
        df = records_to_frame(self.result.records)
        self.assertEqual(len(df), 3)
        self.assertEqual(list(df.columns[:2]), ["Uplift Ratio", "Name"])


class TestOtherMenuLayouts(unittest.TestCase):
    def test_class_aircraft_menu(self):
        pho, com = extract_sheet(Grid(CLASS_AIRCRAFT_ROWS), CLASS_AIRCRAFT_MENU).records
        self.assertEqual((pho["class"], pho["AircraftType"], pho["MenuId"], pho["Cycle"]),
                         ("BUSINESS CLASS", "NEO", "B1", "CYCLE 4"))
        self.assertEqual((com["AircraftType"], com["MenuId"], com["Cycle"]), ("normal", "B2", "CYCLE 4"))

    def test_cycle_menu(self):
        result = extract_sheet(Grid(CYCLE_MENU_ROWS), CYCLE_MENU, [MergedRegion(4, 5, 0, 0)])
        beef, fish, chips = result.records
        self.assertEqual(beef["Class"], "Class: Business")
        self.assertEqual(beef["MenuID"], "C3")
        self.assertEqual(beef["Cycle"], "ALL")
        self.assertEqual(beef["Unit"], "pcs")
        self.assertEqual(fish["UpliftRatio"], "50%")
        self.assertEqual(fish["Cycle"], "CYCLE 2")
        self.assertEqual((fish["TimeStart"], fish["TimeEnd"]), ("2025-04-08", "2025-04-14"))
        self.assertEqual(chips["UpliftRatio"], "50%")
        self.assertEqual(chips["Cycle"], "CYCLE 2")

    def test_menu_block(self):
        steak, noodles = extract_sheet(Grid(MENU_BLOCK_ROWS), MENU_BLOCK).records
        self.assertEqual((steak["Class"], steak["MenuID"], steak["Cycle"]), ("Business", "A1", "CYCLE 1"))
        self.assertEqual((noodles["Class"], noodles["MenuID"], noodles["Cycle"]), ("Economy", "A2", "CYCLE 2"))
        self.assertEqual(noodles["Qty"], "2")

    def test_cycle_menu_fill_down_without_merges(self):
        chips = extract_sheet(Grid(CYCLE_MENU_ROWS), CYCLE_MENU).records[2]
        self.assertEqual(chips["Name"], "Chips")
        self.assertEqual(chips["UpliftRatio"], "50%")
        self.assertEqual(chips["Cycle"], "CYCLE 2")

    def test_fill_down_left_to_merges_when_supplied(self):
        result = extract_sheet(Grid(CYCLE_MENU_ROWS), CYCLE_MENU, [MergedRegion(0, 0, 0, 1)])
        self.assertIsNone(result.records[2]["UpliftRatio"])

    def test_group_summary_in_metadata(self):
        result = extract_sheet(Grid(MENU_BLOCK_ROWS), MENU_BLOCK)
        self.assertEqual(result.metadata["groups"], [
            {"group": "MENU A1", "data_rows": 1},
            {"group": "MENU A2", "data_rows": 1},
        ])


class TestMergedBanners(unittest.TestCase):
    def test_class_banner_merged_across_row(self):
        rows = [
            ["Uplift Ratio", "Component Description", "Quantity", "Remark"],
            ["BUSINESS CLASS", None, None, None],
            [1, "Beef", 10, None],
        ]
        result = extract_sheet(Grid(rows), FLIGHT_MENU, [MergedRegion(1, 1, 0, 3)])
        self.assertEqual([(r["Name"], r["class"]) for r in result.records], [("Beef", "BUSINESS CLASS")])
        self.assertIsNone(result.records[0]["MenuId"])

    def test_menu_block_class_rows_merged_across(self):
        merges = [MergedRegion(2, 2, 0, 3), MergedRegion(5, 5, 0, 3)]
        steak, noodles = extract_sheet(Grid(MENU_BLOCK_ROWS), MENU_BLOCK, merges).records
        self.assertEqual((steak["Class"], steak["MenuID"], steak["Cycle"]), ("Business", "A1", "CYCLE 1"))
        self.assertEqual((noodles["Class"], noodles["MenuID"], noodles["Cycle"]), ("Economy", "A2", "CYCLE 2"))

    def test_roster_group_banner_merged_across(self):
        result = extract_sheet(Grid(ROSTER_ROWS), CREW_ROSTER, [MergedRegion(4, 4, 0, 5)])
        self.assertEqual([r["group"] for r in result.records], ["TỔ BẾP", "TỔ BẾP", "Nhóm 2"])


class TestDetection(unittest.TestCase):
    def assertDetected(self, rows, layout, merges=None):
        grid = resolve_merges(Grid(rows), merges)
        self.assertIs(detect_layout(grid), layout)

    def test_flight_menu(self):
        self.assertDetected(FLIGHT_MENU_ROWS, FLIGHT_MENU, FLIGHT_MENU_MERGES)

    def test_class_aircraft_menu(self):
        self.assertDetected(CLASS_AIRCRAFT_ROWS, CLASS_AIRCRAFT_MENU)

    def test_cycle_menu(self):
        self.assertDetected(CYCLE_MENU_ROWS, CYCLE_MENU)

    def test_menu_block(self):
        self.assertDetected(MENU_BLOCK_ROWS, MENU_BLOCK)

    def test_crew_roster(self):
        self.assertDetected(ROSTER_ROWS, CREW_ROSTER)

    def test_beverage_manifest(self):
        self.assertDetected(MANIFEST_ROWS, BEVERAGE_MANIFEST)

    def test_flight_timetable(self):
        self.assertDetected(TIMETABLE_ROWS, FLIGHT_TIMETABLE)

    def test_header_table(self):
        self.assertDetected(TISSUE_ROWS, HEADER_TABLE)

    def test_every_layout_covered(self):
        covered = {name[len("test_"):] for name in dir(self) if name.startswith("test_")}
        self.assertLessEqual(set(LAYOUTS), covered)


class TestFailureModes(unittest.TestCase):
    def test_missing_start_anchor(self):
        result = extract_sheet(Grid([["nothing to see"]]), "flight_menu", sheet_name="S1")
        self.assertEqual(result.records, [])
        self.assertEqual([d.code for d in result.diagnostics], [START_NOT_FOUND])
        self.assertEqual(result.diagnostics[0].sheet, "S1")

    def test_crash_becomes_diagnostic(self):
        def boom(grid, layout, diagnostics):
            raise ValueError("bad sheet")

        result = extract_sheet(Grid([["x"]]), Layout(name="boom", custom=boom))
        self.assertEqual(result.layout, "boom")
        self.assertEqual(result.records, [])
        self.assertEqual([d.code for d in result.diagnostics], [SHEET_FAILED])

    def test_unknown_layout_name(self):
        with self.assertRaises(KeyError):
            get_layout("no_such_layout")

    def test_undetectable_sheet(self):
        result = extract_sheet(Grid([["hello", "world"]]))
        self.assertIsNone(result.layout)
        self.assertEqual([d.code for d in result.diagnostics], [LAYOUT_UNKNOWN])

    def test_empty_grid(self):
        self.assertIsNone(detect_layout(Grid([])))
        self.assertIsInstance(extract_sheet(Grid([]), "cycle_menu"), ExtractionResult)


class TestRegistry(unittest.TestCase):
    def test_all_layouts_registered(self):
        self.assertEqual(
            set(LAYOUTS),
            {"flight_menu", "class_aircraft_menu", "cycle_menu", "menu_block", "crew_roster",
             "beverage_manifest", "flight_timetable", "header_table"},
        )
        self.assertIs(get_layout(" Flight_Menu "), FLIGHT_MENU)


if __name__ == "__main__":
    unittest.main()
