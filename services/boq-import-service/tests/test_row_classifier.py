from parsers.column_mapping import detect_column_mapping
from parsers.row_classifier import ClassifierState, RowKind, advance, classify_row, fold_rows
from parsers.validation import REASON_QUANTITY_MISSING

COLUMNS = detect_column_mapping(["Code", "Description", "Unit", "Qty", "Rate", "Amount"])


def _row(description, qty=None, rate=None, amount=None, unit=None, code=None):
    return {"Code": code, "Description": description, "Unit": unit, "Qty": qty, "Rate": rate, "Amount": amount}


def test_blank_description_is_skipped():
    assert classify_row(_row("   ", qty=4), COLUMNS) is RowKind.BLANK


def test_short_row_without_numbers_is_section_header():
    assert classify_row(_row("EARTHWORK"), COLUMNS) is RowKind.SECTION_HEADER


def test_long_row_without_numbers_is_line_item():
    assert classify_row(_row("x" * 100), COLUMNS) is RowKind.LINE_ITEM


def test_grand_total_is_flagged_line_item_not_header():
    state = fold_rows([_row("Grand Total")], COLUMNS)

    assert state.sections == ()
    assert len(state.items) == 1
    assert state.items[0].description == "Grand Total"
    assert state.items[0].is_review_flagged
    assert state.items[0].flag_reason == REASON_QUANTITY_MISSING


def test_bare_total_marker_is_skipped():
    assert classify_row(_row("TOTAL"), COLUMNS) is RowKind.BLANK
    assert classify_row(_row("Total:"), COLUMNS) is RowKind.BLANK


def test_section_is_carried_forward_to_following_items():
    rows = [
        _row("EARTHWORK"),
        _row("Excavation in soil", qty=100, rate=250, unit="cum", code="1.1"),
        _row("Backfilling", qty=40, rate=120, unit="cum", code="1.2"),
        _row("CONCRETE WORK"),
        _row("PCC 1:4:8", qty=12, rate=5200, unit="cum", code="2.1"),
    ]

    state = fold_rows(rows, COLUMNS)

    assert state.sections == ("EARTHWORK", "CONCRETE WORK")
    assert [item.section_name for item in state.items] == ["EARTHWORK", "EARTHWORK", "CONCRETE WORK"]
    assert [item.code for item in state.items] == ["1.1", "1.2", "2.1"]


def test_repeated_section_name_is_recorded_once():
    rows = [_row("PLUMBING"), _row("Pipe 20mm", qty=10, rate=5), _row("PLUMBING"), _row("Pipe 25mm", qty=3, rate=8)]

    state = fold_rows(rows, COLUMNS)

    assert state.sections == ("PLUMBING",)
    assert len(state.items) == 2


def test_advance_tracks_just_updated_section():
    state = advance(ClassifierState(), _row("FLOORING"), COLUMNS)
    assert state.just_updated_section
    assert state.current_section == "FLOORING"

    state = advance(state, _row("Vitrified tile", qty=50, rate=60, unit="sqm"), COLUMNS)
    assert not state.just_updated_section
    assert state.items[-1].section_name == "FLOORING"


def test_fold_does_not_mutate_initial_state():
    initial = ClassifierState()

    fold_rows([_row("ROOFING"), _row("Sheets", qty=2, rate=900)], COLUMNS, initial)

    assert initial.items == ()
    assert initial.sections == ()


def test_whole_number_codes_render_without_decimal_point():
    state = fold_rows([_row("Cement", qty=10, rate=400, code=3.0)], COLUMNS)

    assert state.items[0].code == "3"
