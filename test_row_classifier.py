import unittest

from diagnostics import UNMATCHED_ROW, UNPARSABLE_CONDITION, DiagnosticLog
from layouts import CYCLE_MENU, FLIGHT_MENU, MENU_BLOCK
from row_classifier import RowContext, RowKind, classify_row, classify_rows, data_rows, fill_down
from sheet_grid import Grid


def classify(layout, rows, ctx=None):
    diags = DiagnosticLog("test")
    out = classify_rows(Grid(rows), range(len(rows)), layout.roles, layout.rules,
                        context=ctx or layout.initial, diagnostics=diags)
    return out, diags


class TestFlightMenuRules(unittest.TestCase):
    def test_group_checkpoint_data(self):
        out, diags = classify(FLIGHT_MENU, [
            ["CLASS A"],
            ["<cond> NEO 08:00<ETD<12:00", None, "MENU X1"],
            ["", "Chicken rice", "50", None],
        ])
        self.assertEqual([c.kind for c in out], [RowKind.GROUP_HEADER, RowKind.CHECKPOINT, RowKind.DATA])
        ctx = out[2].context
        self.assertEqual(ctx.group, "CLASS A")
        self.assertEqual(ctx.sub_group, "NEO")
        self.assertEqual((ctx.start_time, ctx.end_time), ("08:00", "12:00"))
        self.assertEqual(ctx.identifier, "X1")
        self.assertEqual(len(diags), 0)

    def test_group_header_resets_lower_context(self):
        out, _ = classify(FLIGHT_MENU, [
            ["CLASS A"],
            ["Dành cho tàu NEO 08:00<ETD<12:00", None, "MENU X1"],
            ["", "Rice", "1"],
            ["CREW"],
            ["", "Water", "2"],
        ])
        crew = out[4].context
        self.assertEqual(crew.group, "CREW")
        self.assertIsNone(crew.sub_group)
        self.assertIsNone(crew.start_time)
        self.assertEqual(crew.identifier, "X1")

    def test_unparsable_window_clears_previous(self):
        out, diags = classify(FLIGHT_MENU, [
            ["CLASS A"],
            ["08:00<ETD<12:00 dành cho tàu"],
            ["", "Rice", "1"],
            ["ETD 25:00<ETD<26:00 dành cho tàu"],
            ["", "Soup", "1"],
        ])
        self.assertEqual(out[2].context.start_time, "08:00")
        self.assertIsNone(out[4].context.start_time)
        self.assertIsNone(out[4].context.end_time)
        self.assertEqual(diags.codes(), [UNPARSABLE_CONDITION])

    def test_identifier_only_row(self):
        out, _ = classify(FLIGHT_MENU, [
            ["CLASS A"],
            [None, None, "MENU B2"],
            ["", "Rice", "1"],
        ])
        self.assertEqual(out[1].kind, RowKind.IDENTIFIER_ONLY)
        self.assertEqual(out[2].context.identifier, "B2")

    def test_trailer_blank_and_unmatched(self):
        out, diags = classify(FLIGHT_MENU, [
            ["Loaded By: ________"],
            [None, None, None, None],
            ["random", None, None, "stray"],
        ])
        self.assertEqual([c.kind for c in out], [RowKind.IGNORABLE, RowKind.IGNORABLE, RowKind.UNMATCHED])
        self.assertEqual(diags.codes(), [UNMATCHED_ROW])

    def test_snapshots_do_not_change(self):
        out, _ = classify(FLIGHT_MENU, [
            ["CLASS A"],
            ["", "Rice", "1"],
            ["CLASS B"],
            ["", "Soup", "1"],
        ])
        self.assertEqual(out[1].context.group, "CLASS A")
        self.assertEqual(out[3].context.group, "CLASS B")

    def test_reducer_returns_new_context(self):
        ctx = RowContext()
        new_ctx, row = classify_row(ctx, ["CLASS A"], 0, FLIGHT_MENU.roles, FLIGHT_MENU.rules)
        self.assertIsNone(ctx.group)
        self.assertEqual(new_ctx.group, "CLASS A")
        self.assertIs(row.context, new_ctx)


class TestCycleMenuRules(unittest.TestCase):
    def test_cycle_checkpoint_with_date_range(self):
        out, diags = classify(CYCLE_MENU, [
            ["50%", "Beef", "pcs", 10, None],
            [None, "CYCLE 2", None, None, "8-14 APR.2025"],
            ["50%", "Fish", "pcs", 10, None],
            [None, "CYCLE 3", None, None, "31-31 APR.2025"],
            ["50%", "Pork", "pcs", 10, None],
        ])
        self.assertEqual(out[0].context.cycle, "ALL")
        self.assertEqual(out[1].kind, RowKind.CHECKPOINT)
        self.assertEqual(out[2].context.cycle, "CYCLE 2")
        self.assertEqual((out[2].context.start_time, out[2].context.end_time), ("2025-04-08", "2025-04-14"))
        self.assertEqual(out[4].context.cycle, "CYCLE 3")
        self.assertIsNone(out[4].context.start_time)
        self.assertEqual(diags.codes(), [UNPARSABLE_CONDITION])


class TestMenuBlockRules(unittest.TestCase):
    def test_menu_rows_and_class_rows(self):
        out, _ = classify(MENU_BLOCK, [
            ["100%", "Orphan item", 1, None],
            ["MENU A1", None, "CYCLE", "CYCLE 1"],
            ["Business", None, None, None],
            ["100%", "Steak", 1, None],
        ])
        self.assertEqual([c.kind for c in out],
                         [RowKind.DATA, RowKind.GROUP_HEADER, RowKind.CHECKPOINT, RowKind.DATA])
        self.assertEqual(out[0].context.identifier, "%STANDALONE")
        last = out[3].context
        self.assertEqual((last.identifier, last.cycle, last.sub_group), ("A1", "CYCLE 1", "Business"))
        self.assertEqual(len(data_rows(out)), 2)


class TestRepeatedLabelCells(unittest.TestCase):
    def test_label_copied_across_row_is_group_header(self):
        out, _ = classify(FLIGHT_MENU, [
            ["BUSINESS CLASS", "BUSINESS CLASS", "BUSINESS CLASS", "BUSINESS CLASS"],
            [1, "Beef", 10, None],
        ])
        self.assertEqual([c.kind for c in out], [RowKind.GROUP_HEADER, RowKind.DATA])
        self.assertIsNone(out[0].context.identifier)

    def test_label_copied_into_name_is_not_data(self):
        out, diags = classify(FLIGHT_MENU, [["Special note", "Special note", None, None]])
        self.assertEqual(out[0].kind, RowKind.UNMATCHED)
        self.assertEqual(diags.codes(), [UNMATCHED_ROW])


class TestFillDown(unittest.TestCase):
    def test_blank_label_takes_previous_data_value(self):
        out, _ = classify(CYCLE_MENU, [
            [0.5, "Fish", "pcs", 12, None],
            [None, "CYCLE 2", None, None, "8-14 APR.2025"],
            [None, "Chips", "pcs", 12, None],
        ])
        filled = fill_down(out, [CYCLE_MENU.roles.label])
        self.assertEqual(filled[2].cells[0], 0.5)
        self.assertIsNone(filled[1].cells[0])            # checkpoint untouched
        self.assertIsNone(out[2].cells[0])               # input not modified

    def test_group_header_restarts_carry(self):
        out, _ = classify(FLIGHT_MENU, [
            [0.5, "Beef", 10],
            ["ECONOMY CLASS"],
            [None, "Rice", 10],
        ])
        filled = fill_down(out, [0])
        self.assertIsNone(filled[2].cells[0])


if __name__ == "__main__":
    unittest.main()
