from imagediff.core.lines import (
    UnionFind,
    dynamic_center_y_threshold,
    group_by_line,
    is_same_line,
    line_partition,
    merge_adjacent_lines,
    should_merge_lines,
    split_lines_by_x_gap,
)
from imagediff.core.types import BoundingBox, DiffRegion, LineGroup, Point


def region(region_id, x, y, w, h):
    box = BoundingBox(x, y, w, h)
    return DiffRegion(region_id, box, w * h, Point(x + w // 2, y + h // 2))


def test_overlapping_regions_share_a_line():
    regions = [region(1, 0, 10, 30, 10), region(2, 40, 12, 30, 10)]

    lines = group_by_line(regions, 0.4, 55)

    assert len(lines) == 1
    assert lines[0].line_index == 0
    assert lines[0].region_ids == [1, 2]
    assert lines[0].bounding_box.to_dict() == {"x": 0, "y": 10, "width": 70, "height": 12}


def test_large_horizontal_gap_separates_lines():
    regions = [region(1, 200, 10, 30, 10), region(2, 0, 10, 30, 10)]

    lines = group_by_line(regions)

    assert [line.region_ids for line in lines] == [[2], [1]]
    assert [line.line_index for line in lines] == [0, 1]


def test_grouping_is_transitive():
    regions = [
        region(1, 0, 10, 30, 10),
        region(2, 70, 10, 30, 10),
        region(3, 140, 10, 30, 10),
    ]

    lines = group_by_line(regions)

    assert len(lines) == 1
    assert lines[0].region_ids == [1, 2, 3]


def test_lines_ordered_top_to_bottom():
    regions = [
        region(1, 0, 100, 40, 10),
        region(2, 0, 10, 40, 10),
        region(3, 0, 55, 40, 10),
    ]

    lines = group_by_line(regions)

    assert [line.region_ids for line in lines] == [[2], [3], [1]]
    means = [line.mean_center_y for line in lines]
    assert means == sorted(means)


def test_regions_inside_line_ordered_left_to_right():
    regions = [region(1, 80, 10, 30, 10), region(2, 40, 10, 30, 10), region(3, 0, 11, 30, 10)]

    lines = group_by_line(regions)

    assert lines[0].region_ids == [3, 2, 1]


def test_every_region_in_exactly_one_line():
    regions = [region(i + 1, (i % 4) * 45, (i // 4) * 50, 35, 12) for i in range(12)]

    lines = group_by_line(regions)

    ids = [region_id for line in lines for region_id in line.region_ids]
    assert sorted(ids) == list(range(1, 13))
    assert len(lines) == 3


def test_is_same_line_rejects_distant_centres():
    a = region(1, 0, 0, 30, 10)
    b = region(2, 0, 40, 30, 10)

    assert not is_same_line(a, b, 0.4, 30, 55)


def test_is_same_line_containment_rule():
    tall = region(1, 0, 0, 40, 40)
    centred = region(2, 45, 15, 20, 10)
    high = region(3, 45, 0, 20, 10)

    assert is_same_line(tall, centred, 0.4, 30, 55)
    # Centre gap 15 exceeds 0.8 x 10.
    assert not is_same_line(tall, high, 0.4, 30, 55)


def test_dynamic_threshold_follows_region_height():
    assert dynamic_center_y_threshold([]) == 30
    assert dynamic_center_y_threshold([region(1, 0, 0, 10, 10)]) == 30
    assert dynamic_center_y_threshold([region(1, 0, 0, 10, 100)]) == 60


def test_merge_adjacent_lines_with_close_centres():
    upper = LineGroup.from_regions([region(1, 0, 0, 50, 10)])
    lower = LineGroup.from_regions([region(2, 60, 20, 50, 10)])
    far = LineGroup.from_regions([region(3, 0, 90, 50, 10)])

    merged = merge_adjacent_lines([far, lower, upper])

    assert [line.region_ids for line in merged] == [[1, 2], [3]]
    assert [line.line_index for line in merged] == [0, 1]


def test_split_lines_at_large_x_gap():
    line = LineGroup.from_regions([region(1, 0, 10, 30, 10), region(2, 200, 10, 30, 10)])

    split = split_lines_by_x_gap([line], 55)

    assert [line.region_ids for line in split] == [[1], [2]]
    assert [line.line_index for line in split] == [0, 1]


def test_split_uses_furthest_right_edge():
    # Region 2 starts far from region 3's edge but close to region 1's.
    line = LineGroup.from_regions(
        [region(1, 0, 10, 100, 10), region(3, 10, 10, 10, 10), region(2, 130, 10, 30, 10)]
    )

    split = split_lines_by_x_gap([line], 55)

    assert len(split) == 1


def test_empty_input():
    assert group_by_line([]) == []


def test_partition_is_geometry_only():
    regions = [region(1, 0, 10, 30, 10), region(2, 0, 60, 30, 10)]
    renumbered = [region(7, 0, 60, 30, 10), region(9, 0, 10, 30, 10)]

    assert line_partition(group_by_line(regions)) == line_partition(group_by_line(renumbered))


def test_union_find_groups():
    sets = UnionFind(5)
    sets.union(0, 1)
    sets.union(3, 4)
    sets.union(1, 4)

    assert sets.find(0) == sets.find(3)
    assert sorted(sorted(group) for group in sets.groups()) == [[0, 1, 3, 4], [2]]


def test_large_centre_gap_needs_stronger_overlap():
    tall = region(1, 0, 0, 30, 40)
    # Centre gap 14 exceeds half the smaller height (12); overlap 18/24 = 0.75.
    strong = region(2, 40, 22, 30, 24)
    # Centre gap 18, overlap 14/24 = 0.58: enough for 0.4 but not for 0.6.
    weak = region(3, 40, 26, 30, 24)

    assert is_same_line(tall, strong, 0.4, 30, 55)
    assert not is_same_line(tall, weak, 0.4, 30, 55)
    assert is_same_line(tall, weak, 0.35, 30, 55)


def _line_of(x, y, w, h, region_id=1):
    return LineGroup.from_regions([region(region_id, x, y, w, h)])


def test_merge_lines_by_vertical_overlap():
    upper = _line_of(0, 0, 50, 80)
    # Centre gap 46, overlap 24/60 = 0.4.
    overlapping = _line_of(0, 56, 50, 60, 2)
    # Centre gap 54, overlap 16/60 = 0.27.
    shallow = _line_of(0, 64, 50, 60, 3)

    assert should_merge_lines(upper, overlapping)
    assert not should_merge_lines(upper, shallow)
    assert [line.region_ids for line in merge_adjacent_lines([overlapping, upper])] == [[1, 2]]


def test_merge_contained_line_uses_half_height_limit():
    outer = _line_of(0, 0, 50, 200)
    # An overlap threshold above 1 leaves only the containment rule.
    # Centre gap 35 is within max(30, 0.5 x 80).
    near = _line_of(0, 95, 50, 80, 2)
    # Centre gap 60 is not.
    far = _line_of(0, 120, 50, 80, 3)

    assert should_merge_lines(outer, near, overlap_threshold=1.5)
    assert not should_merge_lines(outer, far, overlap_threshold=1.5)
