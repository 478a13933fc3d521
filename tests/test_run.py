import importlib
import logging

import pytest

from mediastorm.run import build_parser, run, run_cli, spec_from_args

from .conftest import StubBackend, metrics_lines

run_module = importlib.import_module("mediastorm.run")


def test_cli_flags_map_onto_spec():
    args = build_parser().parse_args(
        ["--endpoint", "http://h:1", "--host", "alt", "--insecure", "--path", "p/q",
         "--tps", "25", "--size", "0", "-n", "10", "--poolsize", "8", "--timeout", "2.5"]
    )
    spec = spec_from_args(args)
    assert spec.endpoint == "http://h:1"
    assert spec.host == "alt"
    assert spec.insecure
    assert spec.path == "p/q"
    assert spec.rate == 25
    assert spec.size == 0
    assert spec.count == 10
    assert spec.pool_size == 8
    assert spec.timeout == 2.5


def test_missing_endpoint_aborts_with_usage(capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_cli([])
    assert excinfo.value.code != 0
    err = capsys.readouterr().err
    assert "usage:" in err
    assert "endpoint" in err


def test_bad_rate_aborts(capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["--endpoint", "http://localhost", "--tps", "0"])
    assert excinfo.value.code != 0


def test_s3_without_credentials_aborts_before_any_operation(monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(run_module, "run", lambda *a, **k: calls.append(a))
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "")
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", "/nonexistent")
    monkeypatch.setenv("AWS_CONFIG_FILE", "/nonexistent")
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")
    monkeypatch.delenv("AWS_PROFILE", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        run_cli(["--endpoint", "http://localhost:9000", "--backend", "s3", "--bucket", "b"])
    assert excinfo.value.code != 0
    assert "credentials" in capsys.readouterr().err
    assert calls == []


@pytest.mark.asyncio
async def test_bounded_run_reports_and_drains(make_spec, capsys, caplog):
    backend = StubBackend()
    spec = make_spec(rate=100, count=5, size=0)

    with caplog.at_level(logging.INFO, logger="mediastorm"):
        aggregator = await run(spec, backend)

    out = capsys.readouterr().out
    assert aggregator.successes == 5
    assert len(metrics_lines(out)) == 5
    assert "=> @ " in out  # printed once at start
    assert f"MediaStorm: PutObject {spec.path} (0 B) @ 100 TPS" in caplog.text
    assert not backend.entered


@pytest.mark.asyncio
async def test_every_operation_gets_the_same_payload(make_spec):
    backend = StubBackend()
    await run(make_spec(rate=200, count=4, size=32), backend)
    bodies = {c["body"] for c in backend.calls}
    assert len(bodies) == 1
    assert len(bodies.pop()) == 32


def test_cli_runs_a_bounded_load(monkeypatch, capsys):
    backend = StubBackend()
    monkeypatch.setattr(run_module, "make_backend", lambda spec: backend)

    assert run_cli(["--endpoint", "http://localhost", "--tps", "200", "-n", "3"]) == 0
    assert len(metrics_lines(capsys.readouterr().out)) == 3
    assert len(backend.calls) == 3
