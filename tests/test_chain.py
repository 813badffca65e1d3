import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from einloop import (
    NonMultipliableShapesError,
    ShapeMismatchError,
    chain_cost_table,
    execute_chain,
    linalg,
    matmul_chain,
    matmul_chain_naive,
    plan_chain,
)
from einloop.core import chain


def test_three_matrix_textbook_case():
    plan = plan_chain([(10, 100), (100, 5), (5, 50)])
    # (A0 A1) A2 = 5000 + 2500, A0 (A1 A2) = 25000 + 50000
    assert plan.cost == 7500
    assert plan.render() == "((A0 A1) A2)"
    assert plan.root.shape == (10, 50)


def test_cost_table_cells():
    table = chain_cost_table([(10, 100), (100, 5), (5, 50)])
    assert table[0][1].cost == 5000
    assert table[0][1].shape == (10, 5)
    assert table[1][2].cost == 25000
    assert table[0][2].split == 1
    assert table[1][0] is None


def test_planner_beats_left_fold():
    plan = plan_chain([(1000, 1), (1, 1000), (1000, 1000)])
    assert plan.render() == "(A0 (A1 A2))"
    assert plan.cost == 2_000_000
    assert plan.naive_cost == 1_001_000_000
    assert plan.cost < plan.naive_cost


def test_six_matrix_classic_instance():
    shapes = [(30, 35), (35, 15), (15, 5), (5, 10), (10, 20), (20, 25)]
    plan = plan_chain(shapes)
    assert plan.cost == 15125
    assert plan.render() == "((A0 (A1 A2)) ((A3 A4) A5))"


def test_ties_pick_the_smallest_split():
    plan = plan_chain([(2, 2), (2, 2), (2, 2)])
    assert plan.render() == "((A0 A1) A2)"


def test_single_matrix_plan_is_a_leaf():
    plan = plan_chain([(3, 4)])
    assert plan.root.is_leaf
    assert plan.cost == 0
    assert plan.naive_cost == 0


def test_render_with_names():
    plan = plan_chain([(10, 100), (100, 5), (5, 50)])
    assert plan.render(["X", "Y", "Z"]) == "((X Y) Z)"


def test_non_multipliable_neighbours():
    with pytest.raises(NonMultipliableShapesError) as excinfo:
        plan_chain([(2, 3), (3, 4), (5, 6)])
    err = excinfo.value
    assert err.position == 1
    assert err.left == (3, 4)
    assert err.right == (5, 6)


def test_chain_operands_must_be_matrices():
    with pytest.raises(ShapeMismatchError):
        plan_chain([(2, 3, 4)])
    with pytest.raises(ShapeMismatchError):
        plan_chain([])


def test_executor_multiplies_once_per_inner_node():
    calls = []

    def _multiply(a, b):
        calls.append((a.shape, b.shape))
        return a @ b

    mats = [np.ones((2, 3)), np.ones((3, 4)), np.ones((4, 1)), np.ones((1, 5))]
    plan = plan_chain([m.shape for m in mats])
    result = execute_chain(plan, mats, _multiply)
    assert len(calls) == 3
    np.testing.assert_array_equal(result, mats[0] @ mats[1] @ mats[2] @ mats[3])


def test_executor_checks_operand_count():
    plan = plan_chain([(2, 2), (2, 2)])
    with pytest.raises(ShapeMismatchError):
        execute_chain(plan, [np.eye(2)], lambda a, b: a @ b)


def test_planned_and_naive_chains_agree():
    rng = np.random.default_rng(1)
    mats = [
        rng.integers(-2, 3, size=(6, 1)),
        rng.integers(-2, 3, size=(1, 6)),
        rng.integers(-2, 3, size=(6, 6)),
    ]
    planned = matmul_chain(*mats)
    naive = matmul_chain_naive(*mats)
    np.testing.assert_array_equal(planned, naive)
    np.testing.assert_array_equal(planned, mats[0] @ mats[1] @ mats[2])


def test_single_operand_is_returned():
    a = np.eye(3)
    assert matmul_chain(a) is a


def test_two_operands_bypass_the_planner(monkeypatch):
    def _boom(shapes):
        raise AssertionError("planner should not run for two operands")

    monkeypatch.setattr(linalg, "plan_chain", _boom)
    result = matmul_chain(np.eye(2), np.array([[1, 2], [3, 4]]))
    np.testing.assert_array_equal(result, [[1, 2], [3, 4]])


def test_two_operand_chain_still_checks_shapes():
    with pytest.raises(NonMultipliableShapesError):
        matmul_chain(np.ones((2, 3)), np.ones((4, 5)))


def _brute_force_cost(shapes):
    if len(shapes) == 1:
        return 0, shapes[0]
    best = None
    for split in range(1, len(shapes)):
        left_cost, left_shape = _brute_force_cost(shapes[:split])
        right_cost, right_shape = _brute_force_cost(shapes[split:])
        cost = left_cost + right_cost + left_shape[0] * left_shape[1] * right_shape[1]
        if best is None or cost < best:
            best = cost
    return best, (shapes[0][0], shapes[-1][1])


@settings(max_examples=60, deadline=None)
@given(st.lists(st.integers(min_value=1, max_value=30), min_size=2, max_size=7))
def test_planner_matches_brute_force(dims):
    shapes = [(a, b) for a, b in zip(dims, dims[1:])]
    plan = plan_chain(shapes)
    assert plan.cost == _brute_force_cost(shapes)[0]
    assert plan.cost <= plan.naive_cost
    leaves = []

    def _collect(node):
        if node.is_leaf:
            leaves.append(node.start)
        else:
            _collect(node.left)
            _collect(node.right)

    _collect(plan.root)
    assert leaves == list(range(len(shapes)))


def test_every_split_is_considered_for_four_matrices():
    shapes = [(5, 10), (10, 3), (3, 12), (12, 5)]
    expected = _brute_force_cost(shapes)[0]
    assert plan_chain(shapes).cost == expected == 405


def test_plan_chain_checks_shapes_once(monkeypatch):
    calls = []
    original = chain.check_chain_shapes

    def _counting(shapes):
        calls.append(len(shapes))
        return original(shapes)

    monkeypatch.setattr(chain, "check_chain_shapes", _counting)
    plan = plan_chain([(10, 100), (100, 5), (5, 50)])
    assert calls == [3]
    assert plan.naive_cost == chain.naive_chain_cost([(10, 100), (100, 5), (5, 50)])
