from collections import Counter

from novelharvest.workflows.sequence_diff import (
    EditOp,
    edit_distance,
    integrate,
    intersect,
    shortest_edit_script,
)


def test_distance_to_self_is_zero() -> None:
    names = ["Prologue", "Chapter 1", "Chapter 2", "Epilogue"]
    assert edit_distance(names, names) == 0
    assert all(op is EditOp.KEEP for op in shortest_edit_script(names, names))


def test_distance_is_symmetric() -> None:
    a = ["A", "B", "C"]
    b = ["A", "B", "D"]
    assert edit_distance(a, b) == 2
    assert edit_distance(b, a) == 2


def test_distance_against_empty_counts_every_item() -> None:
    assert edit_distance([], ["x", "y"]) == 2
    assert edit_distance(["x", "y", "z"], []) == 3
    assert edit_distance([], []) == 0


def test_substitution_is_one_delete_and_one_insert() -> None:
    ops = Counter(shortest_edit_script(["a"], ["b"]))
    assert ops == Counter({EditOp.DELETE: 1, EditOp.INSERT: 1})


def test_integrate_keeps_both_sides_in_order() -> None:
    assert integrate(["A", "B", "C"], ["A", "B", "D"]) == ["A", "B", "C", "D"]
    assert integrate(["A", "B", "D"], ["A", "C", "D"]) == ["A", "B", "C", "D"]
    assert integrate(["A"], []) == ["A"]
    assert integrate([], ["A"]) == ["A"]


def test_intersect_returns_aligned_items() -> None:
    assert intersect(["A", "B", "C"], ["A", "C", "D"]) == ["A", "C"]
    assert intersect(["A"], ["B"]) == []
