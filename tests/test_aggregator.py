import pytest

from milguard.analysis.aggregator import aggregate_results, clamp_confidence, severity_band
from milguard.core.errors import NoVerdictError
from milguard.schemas import DetectionReport, ProviderResult


def _result(confidence, is_ai=None, indicators=()):
    return ProviderResult(
        confidence=confidence,
        is_ai_generated=confidence > 0.5 if is_ai is None else is_ai,
        indicators=list(indicators),
    )


@pytest.mark.parametrize("confidences", [
    [0.9, 0.3],
    [0.1],
    [0.2, 0.4, 0.6, 0.8],
    [0.51, 0.5, 0.49],
    [1.0, 1.0, 0.0],
])
def test_overall_is_mean_and_verdict_follows_threshold(confidences):
    results = {f"p{i}": _result(c) for i, c in enumerate(confidences)}

    report = aggregate_results(results)

    expected = sum(confidences) / len(confidences)
    assert report.overall.confidence == pytest.approx(expected)
    assert report.overall.is_ai_generated == (report.overall.confidence > 0.5)
    assert report.overall.provider_count == len(confidences)


def test_exactly_half_resolves_to_human():
    report = aggregate_results({"openai": _result(0.5, is_ai=True)})

    assert report.overall.confidence == 0.5
    assert report.overall.is_ai_generated is False


def test_out_of_range_confidence_is_clamped_not_rejected():
    report = aggregate_results({"noisy": _result(1.7), "other": _result(0.0)})

    # 1.7 counts as 1.0 -> mean 0.5 -> human
    assert report.overall.confidence == pytest.approx(0.5)
    assert report.overall.is_ai_generated is False
    # provider entry itself is passed through unchanged
    assert report.providers["noisy"].confidence == 1.7


def test_negative_confidence_clamps_to_zero():
    assert clamp_confidence(-0.4) == 0.0
    assert clamp_confidence(float("nan")) == 0.0
    report = aggregate_results({"a": _result(-3.0), "b": _result(0.6)})
    assert report.overall.confidence == pytest.approx(0.3)


def test_empty_input_raises_no_verdict():
    with pytest.raises(NoVerdictError):
        aggregate_results({})


def test_reserved_provider_name_is_dropped():
    with pytest.raises(NoVerdictError):
        aggregate_results({"overall": _result(0.9)})

    report = aggregate_results({"overall": _result(0.9), "gptZero": _result(0.2)})
    assert list(report.providers) == ["gptZero"]
    assert report.overall.confidence == pytest.approx(0.2)


@pytest.mark.parametrize("reserved", ["overall", "providers"])
def test_reserved_names_never_reach_the_flat_payload(reserved):
    report = aggregate_results({reserved: _result(0.9), "gptZero": _result(0.2)})

    payload = report.model_dump()
    parsed = DetectionReport.model_validate(payload)

    assert set(payload) == {"gptZero", "overall"}
    assert list(parsed.providers) == ["gptZero"]
    assert parsed.overall.confidence == pytest.approx(0.2)


def test_indicators_union_keeps_first_seen_order():
    report = aggregate_results({
        "openai": _result(0.8, indicators=["Repetitive phrasing", "Uniform sentence length"]),
        "gptZero": _result(0.7, indicators=["Uniform sentence length", "Low burstiness"]),
        "third": _result(0.6),
    })

    assert report.overall.indicators == ["Repetitive phrasing", "Uniform sentence length", "Low burstiness"]


def test_reasoning_summarizes_flagged_services():
    report = aggregate_results({"openai": _result(0.9, is_ai=True), "gptZero": _result(0.3, is_ai=False)})

    assert report.overall.reasoning.startswith("Likely AI-generated")
    assert "1 of 2 detection services" in report.overall.reasoning
    assert "60%" in report.overall.reasoning


def test_report_serializes_flat_with_camel_case_keys():
    report = aggregate_results({"openai": _result(0.9), "gptZero": _result(0.3)})

    payload = report.model_dump()

    assert set(payload) == {"openai", "gptZero", "overall"}
    assert payload["overall"]["isAiGenerated"] is True
    assert payload["openai"]["confidence"] == 0.9

    parsed = DetectionReport.model_validate(payload)
    assert parsed.overall.confidence == pytest.approx(0.6)
    assert parsed.providers["gptZero"].is_ai_generated is False


@pytest.mark.parametrize("confidence, band", [
    (0.95, "high"),
    (0.71, "high"),
    (0.7, "medium"),
    (0.4, "medium"),
    (0.39, "low"),
    (0.0, "low"),
])
def test_severity_band(confidence, band):
    assert severity_band(confidence) == band
