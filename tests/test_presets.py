import pytest

from imagediff.presets import BackgroundFilter, DiffParams, get_preset, iter_presets, parse_color


def test_presets_available():
    names = [preset.name for preset in iter_presets()]

    assert names == ["strict", "balanced", "loose"]
    assert get_preset("Balanced").params == DiffParams()


def test_strict_is_less_sensitive_than_loose():
    strict = get_preset("strict").params
    loose = get_preset("loose").params

    assert strict.threshold > loose.threshold
    assert strict.min_area_size > loose.min_area_size
    assert strict.max_x_gap < loose.max_x_gap


def test_unknown_preset_lists_choices():
    with pytest.raises(KeyError, match="balanced"):
        get_preset("fuzzy")


def test_params_copy_and_validate():
    params = DiffParams().copy(threshold=12, erode=False)

    assert params.threshold == 12
    assert not params.erode
    assert params.validate() is params
    assert params.to_dict()["background"]["min_features"] == 2

    with pytest.raises(ValueError):
        DiffParams(overlap_threshold=0).validate()
    with pytest.raises(ValueError):
        DiffParams(min_area_size=0).validate()


def test_background_filter_aspect_range_is_inclusive():
    filt = BackgroundFilter()

    # 70x100 has aspect exactly 0.7 and covers 7% of a 100x1000 image.
    assert filt.features(70, 100, 7000, 100, 1000)["large_square"]
    assert not filt.features(69, 100, 6900, 100, 1000)["large_square"]


def test_parse_color():
    assert parse_color("#ff8000") == (255, 128, 0)
    assert parse_color("#FF800080") == (255, 128, 0)
    assert parse_color("10, 20, 30") == (10, 20, 30)
    assert parse_color("1,0,0") == (255, 0, 0)
    assert parse_color("") is None
    assert parse_color(None) is None
    with pytest.raises(ValueError):
        parse_color("#fff")
    with pytest.raises(ValueError):
        parse_color("1,2")
