"""评分聚合：由各维度选中的等级计算答案的总百分比。

分母始终是该题评分细则的总数，未评分的维度按 0 计入。
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, Sequence


class RubricLike(Protocol):
    id: int
    levels_json: list[dict[str, Any]]


Selection = tuple[int, int]


class InvalidSelectionError(ValueError):
    """维度不属于该题、重复评价或等级下标越界。"""


def selections_from_evaluations(evaluations: Iterable[dict[str, Any]]) -> list[Selection]:
    """从 ``criteria_evaluations_json`` 中取出已选等级的 (rubric_id, level_index)。"""

    selections: list[Selection] = []
    for evaluation in evaluations or []:
        index = evaluation.get("selected_level_index")
        if index is None:
            continue
        selections.append((int(evaluation["rubric_id"]), int(index)))
    return selections


def validate_selections(rubrics: Sequence[RubricLike], selections: Sequence[Selection]) -> None:
    by_id = {rubric.id: rubric for rubric in rubrics}
    seen: set[int] = set()
    for rubric_id, level_index in selections:
        rubric = by_id.get(rubric_id)
        if rubric is None:
            raise InvalidSelectionError(f"Rubric {rubric_id} does not belong to this question")
        if rubric_id in seen:
            raise InvalidSelectionError(f"Duplicate evaluation for rubric {rubric_id}")
        seen.add(rubric_id)
        levels = rubric.levels_json or []
        if not 0 <= level_index < len(levels):
            raise InvalidSelectionError(
                f"Level index {level_index} out of range for rubric {rubric_id}"
            )


def aggregate_percentage(rubrics: Sequence[RubricLike], selections: Sequence[Selection]) -> float:
    """Σ 选中等级百分比 / 评分细则总数；没有评分细则时为 0。"""

    if not rubrics:
        return 0.0
    by_id = {rubric.id: rubric for rubric in rubrics}
    total = 0.0
    for rubric_id, level_index in selections:
        rubric = by_id.get(rubric_id)
        if rubric is None:
            raise InvalidSelectionError(f"Rubric {rubric_id} does not belong to this question")
        levels = rubric.levels_json or []
        if not 0 <= level_index < len(levels):
            raise InvalidSelectionError(
                f"Level index {level_index} out of range for rubric {rubric_id}"
            )
        total += float(levels[level_index]["percentage"])
    return total / len(rubrics)


def is_fully_graded(rubrics: Sequence[RubricLike], selections: Sequence[Selection]) -> bool:
    selected = {rubric_id for rubric_id, _ in selections}
    return bool(rubrics) and all(rubric.id in selected for rubric in rubrics)


def score_answer(answer: Any, rubrics: Sequence[RubricLike]) -> float:
    """重算并写回 ``answer.points_percentage``。"""

    selections = selections_from_evaluations(answer.criteria_evaluations_json)
    answer.points_percentage = aggregate_percentage(rubrics, selections)
    return answer.points_percentage
