import pytest

from einloop.core.exceptions import ConsistencyError, MalformedSpecError
from einloop.core.ir import BinOp, Call, InputRef, Number, OutputRef, default_transform
from einloop.core.normalizer import normalize


def test_matrix_product_ids_follow_first_appearance():
    spec = normalize("ij,jk->ik")
    assert spec.inputs == ((0, 1), (1, 2))
    assert spec.outputs == ((0, 2),)
    assert spec.labels == ("i", "j", "k")
    assert spec.ids == (0, 1, 2)


def test_default_transform_is_sum_of_products():
    spec = normalize("ij,jk->ik")
    expected = BinOp("+", OutputRef(0), BinOp("*", InputRef(0), InputRef(1)))
    assert spec.transforms == (expected,)
    assert spec.is_default_transform(0)


def test_default_transform_without_inputs_adds_one():
    assert default_transform(0, 0) == BinOp("+", OutputRef(0), Number(1))


def test_label_spelling_does_not_matter():
    first = normalize("ij,jk->ik")
    second = normalize("ab,bc->ac")
    assert first == second
    assert hash(first) == hash(second)
    assert second.labels == ("a", "b", "c")


def test_repetition_pattern_matters():
    assert normalize("ij,jk->ik") != normalize("ij,kj->ik")
    assert normalize("ii->i") != normalize("ij->i")


def test_normalize_is_idempotent():
    spec = normalize("ij,jk->max(@1, $1 + $2)->ik")
    assert normalize(spec) is spec
    assert normalize(spec.to_raw()) == spec


def test_explicit_label_lists_are_used_as_is():
    spec = normalize([["row", "col"], ("col", "k"), "->", ["row", "k"]])
    assert spec == normalize("ij,jk->ik")
    assert spec.labels == ("row", "col", "k")


def test_whitespace_around_labels_is_ignored():
    assert normalize(" ij , jk -> ik ") == normalize("ij,jk->ik")


def test_outer_merge_default_sorts_labels_alphabetically():
    # Deliberate quirk: the implicit output is ordered by label, not by
    # order of appearance.
    spec = normalize("j,i")
    assert spec.labels == ("j", "i")
    assert spec.outputs == ((1, 0),)


def test_outer_merge_default_includes_contracted_labels():
    spec = normalize("ij,jk")
    assert spec.outputs == ((0, 1, 2),)


def test_empty_output_after_separator_is_full_reduction():
    spec = normalize("ij->")
    assert spec.outputs == ((),)
    assert normalize(["ij", "->"]).outputs == ((),)


def test_two_separators_carry_transforms():
    spec = normalize("ij,jk->max(@1, $1 + $2)->ik")
    assert spec.transforms == (
        Call("max", (OutputRef(0), BinOp("+", InputRef(0), InputRef(1)))),
    )
    assert not spec.is_default_transform(0)


def test_missing_transforms_fall_back_to_default():
    spec = normalize("ij->@1 + 2 * $1->i,j")
    assert spec.transforms[0] == BinOp("+", OutputRef(0), BinOp("*", Number(2), InputRef(0)))
    assert spec.transforms[1] == BinOp("+", OutputRef(1), InputRef(0))


def test_empty_transform_segment_means_all_defaults():
    assert normalize("ij->->i") == normalize("ij->i")


def test_multiple_scalar_outputs():
    spec = normalize("i->@1+$1,@2+$1*$1->,")
    assert spec.outputs == ((), ())


def test_rank_zero_operand():
    spec = normalize(",i->i")
    assert spec.inputs == ((), (0,))


def test_format_round_trips_through_labels():
    assert normalize("ij,jk->ik").format() == "ij,jk->ik"
    assert normalize("j,i").format() == "j,i->ij"


def test_non_alphabetic_label_is_malformed():
    with pytest.raises(MalformedSpecError) as excinfo:
        normalize("i1,j->ij")
    assert excinfo.value.column == 2
    assert excinfo.value.token == "i1"
    assert "^" in str(excinfo.value)


def test_non_alphabetic_bare_token_in_sequence_is_malformed():
    with pytest.raises(MalformedSpecError):
        normalize(["i-j", "->", "i"])


def test_more_than_two_separators_is_malformed():
    with pytest.raises(MalformedSpecError) as excinfo:
        normalize("i->j->k->l")
    assert excinfo.value.column == 8


def test_more_than_two_separators_in_sequence_is_malformed():
    with pytest.raises(MalformedSpecError):
        normalize(["i", "->", "->", "->", "i"])


def test_output_label_must_come_from_an_input():
    with pytest.raises(ConsistencyError) as excinfo:
        normalize("ij->k")
    assert excinfo.value.labels == ("k",)


@pytest.mark.parametrize(
    "spec",
    [
        "i->$2->i",
        "i->@2->i",
        "i->foo($1)->i",
        "i->max($1)->i",
        "i->$1 +->i",
        "i->$0->i",
        "i->$1,$1->i",
    ],
)
def test_bad_transforms_are_malformed(spec):
    with pytest.raises(MalformedSpecError):
        normalize(spec)


def test_transform_syntax_error_points_into_spec():
    with pytest.raises(MalformedSpecError) as excinfo:
        normalize("ij->$1 ? 2->i")
    assert excinfo.value.column == 8


def test_unsupported_operand_token_is_malformed():
    with pytest.raises(MalformedSpecError):
        normalize([42, "->"])


@pytest.mark.parametrize("literal", ["1e999", "-1e999"])
def test_non_finite_literal_is_rejected_with_column(literal):
    text = f"i->min(@1, {literal})->i"
    with pytest.raises(MalformedSpecError) as excinfo:
        normalize(text)
    assert excinfo.value.column == text.index("1e999") + 1


def test_non_finite_literal_node_is_rejected():
    expr = BinOp("+", OutputRef(0), Number(float("nan")))
    with pytest.raises(MalformedSpecError):
        normalize(["i", "->", expr, "->", "i"])
