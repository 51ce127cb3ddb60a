import logging

import numpy as np
import pandas as pd
import pytest
from hypothesis import given, strategies as st, settings

from growthref import calculate_percentile
from growthref.engine import EngineConfig, GrowthEngine, PercentileResult, ReferenceRange
from growthref.errors import ComputationError, ReferenceDataError, ValidationError
from growthref.methods.lms import LMSMethod
from growthref.methods.table import PercentileTableMethod
from growthref.reference import ReferenceStore, load_series
from growthref.standards import MeasurementType, Sex, Standard


class TestEngineConfig:
    def test_tc001_defaults(self) -> None:
        config = EngineConfig()
        assert config.lms_interpolation.value == "full"
        assert config.gestational_lookup.value == "nearest"
        assert config.age_rounding.value == "none"
        assert config.estimate_table_zscore is False
        assert config.bounds[Standard.CDC_CHILD].weight == 300.0

    def test_tc002_partial_bounds_keep_defaults(self) -> None:
        config = EngineConfig(bounds={"who": {"weight": 20}})
        assert config.bounds[Standard.WHO].weight == 20
        assert config.bounds[Standard.CDC_CHILD].height == 250.0

    def test_tc003_invalid_config_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid configuration"):
            GrowthEngine(config={"lms_interpolation": "cubic"})

    def test_tc004_methods_selected_by_standard(self, engine) -> None:
        assert isinstance(engine.method_for("who"), LMSMethod)
        assert isinstance(engine.method_for("cdc_child"), LMSMethod)
        assert isinstance(engine.method_for("intergrowth"), PercentileTableMethod)


class TestCalculateLms:
    """CDC and WHO calculations."""

    def test_tc005_who_median_is_fiftieth(self, engine) -> None:
        result = engine.calculate(
            standard="who", measurementType="weight", sex="male", ageMonths=12, value=9.6479
        )
        assert isinstance(result, PercentileResult)
        assert result.z_score == pytest.approx(0.0, abs=1e-9)
        assert result.calculated_percentile == pytest.approx(50.0, abs=0.5)
        assert result.percentiles["P50"] == pytest.approx(9.6479)

    def test_tc006_p50_round_trip_every_lms_standard(self, engine) -> None:
        cases = [
            ("cdc_child", "height", 60),
            ("cdc_child", "bmi", 120),
            ("cdc_infant", "headCircumference", 6),
            ("who", "height", 12),
            ("who", "bmi", 12),
        ]
        for standard, measurement_type, age in cases:
            for sex in (1, 2):
                reference = engine.reference_range(standard, measurement_type, sex, age_months=age)
                result = engine.calculate(
                    standard=standard,
                    measurementType=measurement_type,
                    sex=sex,
                    ageMonths=age,
                    value=reference.normal,
                )
                assert result.calculated_percentile == pytest.approx(50.0, abs=0.5)

    def test_tc007_dict_request(self, engine) -> None:
        result = engine.calculate(
            {"standard": "cdc_child", "measurementType": "height", "sex": 1, "ageMonths": 60, "value": 109.2}
        )
        assert result.standard is Standard.CDC_CHILD
        assert result.sex is Sex.MALE
        assert result.age_months == 60.0
        assert result.calculated_percentile == pytest.approx(50.0, abs=1e-6)

    def test_tc008_above_median_is_above_fifty(self, engine) -> None:
        result = engine.calculate(
            standard="cdc_child", measurement_type="weight", sex="female", age_months=120, value=40
        )
        assert result.z_score > 0
        assert result.calculated_percentile > 50

    def test_tc009_interpolated_age(self, engine) -> None:
        result = engine.calculate(
            standard="who", measurementType="weight", sex=1, ageMonths=12.5, value=9.7566
        )
        assert result.percentiles["P50"] == pytest.approx(9.7566)
        assert result.z_score == pytest.approx(0.0, abs=1e-6)

    def test_tc010_idempotent(self, engine) -> None:
        kwargs = dict(standard="who", measurementType="height", sex=2, ageMonths=7.3, value=68.0)
        assert engine.calculate(**kwargs) == engine.calculate(**kwargs)

    def test_tc011_age_from_dates(self, engine) -> None:
        result = engine.calculate(
            standard="cdc_child",
            measurementType="height",
            sex=1,
            value=109.2,
            birthDate="2015-06-01",
            measurementDate="2020-06-01",
        )
        assert result.age_months == 60.0

    def test_tc012_half_month_rounding(self) -> None:
        engine = GrowthEngine(config={"age_rounding": "half_month"})
        rounded = engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=11.8, value=9.6)
        exact = GrowthEngine().calculate(standard="who", measurementType="weight", sex=1, ageMonths=12, value=9.6)
        assert rounded.calculated_percentile == pytest.approx(exact.calculated_percentile)

    def test_tc013_lms_only_mode_keeps_lower_anchors(self) -> None:
        engine = GrowthEngine(config={"lms_interpolation": "lms_only"})
        result = engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=12.5, value=9.7)
        assert result.percentiles["P50"] == pytest.approx(9.6479)


class TestCalculateIntergrowth:
    def test_tc014_median_is_exactly_fifty(self, engine) -> None:
        result = engine.calculate(
            standard="intergrowth",
            measurementType="weight",
            sex=1,
            gestationalWeeks=40,
            gestationalDays=0,
            value=3.440,
        )
        assert result.calculated_percentile == 50.0
        assert result.z_score is None
        assert "zScore" not in result.to_dict()

    def test_tc015_clamping(self, engine) -> None:
        low = engine.calculate(
            standard="intergrowth", measurementType="length", sex=1, gestationalWeeks=40, value=40.0
        )
        high = engine.calculate(
            standard="intergrowth", measurementType="length", sex=1, gestationalWeeks=40, value=60.0
        )
        assert low.calculated_percentile == 0.0
        assert high.calculated_percentile == 100.0

    def test_tc016_estimated_zscore(self) -> None:
        engine = GrowthEngine(config={"estimate_table_zscore": True})
        result = engine.calculate(
            standard="intergrowth", measurementType="weight", sex=1, gestationalWeeks=40, value=3.440
        )
        assert result.z_score == pytest.approx(0.0)
        assert result.to_dict()["zScore"] == pytest.approx(0.0)

    def test_tc017_nearest_row_used_between_weeks(self, engine) -> None:
        result = engine.calculate(
            standard="intergrowth", measurementType="weight", sex=1, gestationalWeeks=40, gestationalDays=3, value=3.44
        )
        assert result.percentiles["P50"] == pytest.approx(3.440)

    def test_tc018_to_dict_omits_missing_anchors(self, engine) -> None:
        payload = engine.calculate(
            standard="intergrowth", measurementType="head", sex=1, gestationalWeeks=40, value=34.8
        ).to_dict()
        assert list(payload["percentiles"]) == ["P3", "P5", "P10", "P50", "P90", "P95", "P97"]
        assert payload["value"] == 34.8
        assert payload["calculatedPercentile"] == 50.0


class TestErrors:
    def test_tc019_validation_before_lookup(self) -> None:
        store = ReferenceStore({})
        engine = GrowthEngine(store=store)
        with pytest.raises(ValidationError):
            engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=30, value=10)

    def test_tc020_missing_series(self) -> None:
        engine = GrowthEngine(store=ReferenceStore({}))
        with pytest.raises(ReferenceDataError):
            engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=6, value=7)

    def test_tc021_zero_median_raises_computation_error(self) -> None:
        frame = pd.DataFrame(
            {"Sex": [1, 1, 2, 2], "Agemos": [0, 24, 0, 24], "L": [0.1] * 4, "M": [0.0, 0.0, 4.0, 9.0], "S": [0.1] * 4, "P50": [1.0] * 4}
        )
        store = ReferenceStore({(Standard.WHO, MeasurementType.WEIGHT): load_series(frame, "who", "weight")})
        engine = GrowthEngine(store=store)
        with pytest.raises(ComputationError):
            engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=0, value=3)

    def test_tc022_sparse_series(self, lms_frame) -> None:
        series = load_series(lms_frame.iloc[1:], "who", "weight")
        engine = GrowthEngine(store=ReferenceStore({(Standard.WHO, MeasurementType.WEIGHT): series}))
        with pytest.raises(ReferenceDataError):
            engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=6, value=7)
        result = engine.calculate(standard="who", measurementType="weight", sex=2, ageMonths=6, value=7)
        assert 0 < result.calculated_percentile < 100


class TestCalculateHistory:
    def test_tc023_history_in_date_order(self, engine) -> None:
        history = engine.calculate_history(
            "who",
            "weight",
            "female",
            "2022-01-10",
            [
                {"date": "2022-07-10", "value": 7.3},
                {"date": "2022-01-10", "weight": 3.2},
                {"date": "2022-04-10"},
            ],
        )
        assert [h["ageInMonths"] for h in history] == [0, 3, 6]
        assert "weight" in history[0]
        assert history[1] == {"date": "2022-04-10", "ageInMonths": 3}
        assert history[2]["weight"]["value"] == 7.3
        assert 0 < history[2]["weight"]["calculatedPercentile"] < 100

    def test_tc024_history_validation_error(self, engine) -> None:
        with pytest.raises(ValidationError):
            engine.calculate_history("who", "weight", 1, "2022-01-10", [{"date": "2021-12-01", "value": 3}])


class TestCalculateFrame:
    def test_tc025_scores_rows(self, engine) -> None:
        df = pd.DataFrame(
            {"sex": ["M", "F", "M"], "age_months": [12, 12, 6], "value": [9.6479, 9.0, 7.9]}
        )
        out = engine.calculate_frame(df, "who", "weight")
        assert list(out.columns) == ["sex", "age_months", "value", "z_score", "percentile"]
        assert out.loc[0, "z_score"] == pytest.approx(0.0, abs=1e-9)
        single = engine.calculate(standard="who", measurementType="weight", sex="F", ageMonths=12, value=9.0)
        assert out.loc[1, "z_score"] == pytest.approx(single.z_score)
        assert out.loc[1, "percentile"] == pytest.approx(single.calculated_percentile)
        assert "z_score" not in df.columns

    def test_tc026_invalid_rows_are_nan(self, engine, caplog) -> None:
        caplog.set_level(logging.WARNING)
        df = pd.DataFrame(
            {"sex": ["M", "X", "M", "F"], "age_months": [12, 12, 30, np.nan], "value": [9.6, 9.6, 12.0, 9.0]}
        )
        out = engine.calculate_frame(df, "who", "weight")
        assert np.isfinite(out.loc[0, "z_score"])
        assert out[["z_score", "percentile"]].iloc[1:].isna().all().all()
        assert any("3 of 4 rows" in r.message for r in caplog.records)

    def test_tc027_custom_columns_and_intergrowth(self, engine) -> None:
        df = pd.DataFrame({"gender": [1, 2], "ga_weeks": [40, 40], "ga_days": [0, 0], "wt": [3.44, 1.0]})
        out = engine.calculate_frame(
            df, "intergrowth", "weight", value_col="wt", sex_col="gender", weeks_col="ga_weeks", days_col="ga_days"
        )
        assert out.loc[0, "percentile"] == 50.0
        assert out.loc[1, "percentile"] == 0.0
        assert out["z_score"].isna().all()

    def test_tc028_missing_column(self, engine) -> None:
        with pytest.raises(ValueError, match="does not exist"):
            engine.calculate_frame(pd.DataFrame({"sex": ["M"], "value": [3.0]}), "who", "weight")

    def test_tc029_invalid_column_name(self, engine) -> None:
        with pytest.raises(ValueError, match="Invalid configuration"):
            engine.calculate_frame(pd.DataFrame(), "who", "weight", value_col=" ")

    def test_tc030_empty_frame(self, engine) -> None:
        out = engine.calculate_frame(
            pd.DataFrame({"sex": [], "age_months": [], "value": []}), "who", "weight"
        )
        assert out.empty
        assert {"z_score", "percentile"} <= set(out.columns)

    def test_tc031_unit_warning(self, engine, caplog) -> None:
        caplog.set_level(logging.WARNING)
        df = pd.DataFrame({"sex": ["M"] * 3, "age_months": [60, 70, 80], "value": [40.0, 45.0, 48.0]})
        engine.calculate_frame(df, "cdc_child", "height")
        assert not any("Height values" in r.message for r in caplog.records)
        df =pd.DataFrame({"sex": ["M"] * 3, "age_months": [60, 70, 80], "value": [4.0, 4.2, 4.5]})
        engine.calculate_frame(df, "cdc_child", "height")
        assert any("mean <20" in r.message for r in caplog.records)


class TestReferenceData:
    def test_tc032_reference_range(self, engine) -> None:
        reference = engine.reference_range("cdc_child", "height", "male", age_months=60)
        assert isinstance(reference, ReferenceRange)
        assert reference.min == pytest.approx(100.6042)
        assert reference.normal == pytest.approx(109.2)
        assert reference.max == pytest.approx(118.3578)

    def test_tc033_reference_range_intergrowth(self, engine) -> None:
        reference = engine.reference_range("intergrowth", "weight", 1, gestational_weeks=40)
        assert reference == pytest.approx((2.614, 3.440, 4.334))

    def test_tc034_reference_range_validates_age(self, engine) -> None:
        with pytest.raises(ValidationError):
            engine.reference_range("who", "weight", 1, age_months=30)

    def test_tc035_reference_curves(self, engine) -> None:
        curves = engine.reference_curves("who", "weight", "male", start=0, stop=24, step=6)
        assert list(curves["age"]) == [0.0, 6.0, 12.0, 18.0, 24.0]
        assert list(curves.columns) == ["age", "P3", "P5", "P10", "P25", "P50", "P75", "P90", "P95", "P97"]
        assert curves.loc[2, "P50"] == 9.65
        assert (curves["P3"] < curves["P97"]).all()

    def test_tc036_reference_curves_default_domain(self, engine) -> None:
        curves = engine.reference_curves("intergrowth", "weight", 2)
        assert list(curves["gestational_weeks"]) == list(map(float, range(24, 43)))
        assert "P25" not in curves.columns

    def test_tc037_reference_curves_bad_step(self, engine) -> None:
        with pytest.raises(ValueError):
            engine.reference_curves("who", "weight", 1, step=0)

    def test_tc040_reference_curves_step_not_dividing_range(self, engine) -> None:
        """Last age is the largest step multiple within the domain"""
        curves = engine.reference_curves("who", "weight", "male", step=1.1)
        assert len(curves) == 22
        assert curves["age"].iloc[-1] == pytest.approx(23.1)
        assert curves["age"].max() <= 24.0

    def test_tc041_reference_curves_fractional_step_ends_at_stop(self, engine) -> None:
        curves = engine.reference_curves("cdc_child", "weight", "female", step=0.1)
        assert len(curves) == 2161
        assert curves["age"].iloc[0] == 24.0
        assert curves["age"].iloc[-1] == 240.0
        assert curves.loc[10, "age"] == 25.0

    def test_tc042_reference_curves_empty_range(self, engine) -> None:
        curves = engine.reference_curves("who", "weight", "male", start=12, stop=6)
        assert curves.empty


class TestModuleHelper:
    def test_tc038_calculate_percentile_wire_shape(self) -> None:
        payload = calculate_percentile(
            standard="cdc_child", measurementType="height", sex=1, ageMonths=60, value=110
        )
        assert set(payload) == {"value", "percentiles", "calculatedPercentile", "zScore"}
        assert len(payload["percentiles"]) == 9
        assert 50 < payload["calculatedPercentile"] < 60


@settings(max_examples=50, deadline=None)
@given(
    age=st.floats(min_value=0.0, max_value=24.0),
    a=st.floats(min_value=2.0, max_value=20.0),
    b=st.floats(min_value=2.0, max_value=20.0),
)
def test_tc039_hypothesis_percentile_monotone_in_value(age, a, b) -> None:  # type: ignore[no-untyped-def]
    engine = GrowthEngine()
    lo, hi = sorted((a, b))
    p_lo = engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=age, value=lo)
    p_hi = engine.calculate(standard="who", measurementType="weight", sex=1, ageMonths=age, value=hi)
    assert p_lo.calculated_percentile <= p_hi.calculated_percentile + 1e-9
