import pytest

from apps.common.metrics import Registry


def test_render_text_counters_and_labelled_gauges():
    reg = Registry()
    switches = reg.counter("bg_switch_total", "Committed switches")
    healthy = reg.gauge("bg_env_healthy", "Probe verdict", label="env")

    switches.inc()
    switches.inc(2)
    healthy.set(1, label_value="blue")
    healthy.set(0, label_value="green")

    text = reg.render_text()
    assert "# HELP bg_switch_total Committed switches" in text
    assert "# TYPE bg_switch_total counter" in text
    assert "bg_switch_total 3" in text
    assert '# TYPE bg_env_healthy gauge' in text
    assert 'bg_env_healthy{env="blue"} 1' in text
    assert 'bg_env_healthy{env="green"} 0' in text


def test_unsampled_metric_renders_zero():
    reg = Registry()
    reg.counter("bg_idle_total")
    assert "bg_idle_total 0" in reg.render_text()


def test_same_name_returns_same_metric_and_kind_conflict_raises():
    reg = Registry()
    assert reg.counter("x_total") is reg.counter("x_total")
    with pytest.raises(TypeError):
        reg.gauge("x_total")
