from __future__ import annotations

import json

import httpx
import pytest

from anisync import cli
from anisync.api import runtime_deps
from tests.helpers import catalog_id_from_request, catalog_payload, mock_catalog_client


def test_build_parser_rejects_non_positive_limit() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["run", "--limit", "0"])


def test_init_db_then_run_prints_summary(
    sqlite_database_url: str,
    override_settings,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    override_settings(ingestion_request_delay_seconds=0.0)
    client = mock_catalog_client(
        lambda request: httpx.Response(200, json=catalog_payload(catalog_id_from_request(request)))
    )
    monkeypatch.setattr(cli, "build_ingestion_service", lambda: runtime_deps.build_ingestion_service(client))

    assert cli.main(["init-db"]) == 0
    assert cli.main(["run", "--start-id", "5", "--limit", "2"]) == 0

    output = capsys.readouterr().out
    run_result = json.loads(output[output.index('{\n  "status": "ok",\n  "summary"'):])
    assert run_result["summary"]["start_id"] == 5
    assert run_result["summary"]["last_id"] == 6
    assert run_result["summary"]["success_count"] == 2
    assert run_result["summary"]["stop_reason"] == "limit_reached"


def test_run_without_catalog_url_fails_with_configuration_error(
    sqlite_database_url: str,
    override_settings,
    capsys: pytest.CaptureFixture[str],
) -> None:
    override_settings(catalog_api_base_url="")

    assert cli.main(["run"]) == 2

    assert "CATALOG_API_BASE_URL" in capsys.readouterr().out
