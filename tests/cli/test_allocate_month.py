"""Tests for the allocate_month command-line script."""

import json

import pytest
import yaml

from energy_kernel.db.engine import reset_engine
from scripts.allocate_month import load_snapshot, main

SNAPSHOT = {
    "month": "012024",
    "production": [
        {
            "source_id": "S1",
            "company_id": "C1",
            "type": "SOLAR",
            "available": {"c1": 100, "c2": 0, "c3": 0, "c4": 0, "c5": 0},
        },
        {
            "source_id": "W1",
            "company_id": "C1",
            "type": "WIND",
            "banking": 1,
            "available": {"c1": 0, "c2": 50, "c3": 0, "c4": 0, "c5": 0},
        },
    ],
    "consumption": [
        {"site_id": "A", "remaining": {"c1": 80, "c2": 30, "c3": 0, "c4": 0, "c5": 0}},
    ],
    "banked": [],
}


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.yaml"
    path.write_text(yaml.safe_dump(SNAPSHOT))
    return path


class TestLoadSnapshot:
    def test_builds_engine_inputs(self, snapshot_file):
        snapshot = load_snapshot(snapshot_file)

        assert snapshot["month"] == "012024"
        wind = snapshot["production"][1]
        assert wind.banking_enabled
        assert wind.month == "012024"
        assert snapshot["consumption"][0].site_id == "A"
        assert snapshot["banked"] == []

    def test_banked_units_are_carried_over(self, tmp_path):
        data = dict(SNAPSHOT, banked=[dict(SNAPSHOT["production"][1])])
        path = tmp_path / "banked.yaml"
        path.write_text(yaml.safe_dump(data))

        banked = load_snapshot(path)["banked"]

        assert banked[0].is_carried_over_bank

    def test_month_required(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"production": []}))
        with pytest.raises(ValueError):
            load_snapshot(path)


class TestMain:
    def test_prints_allocation_json(self, snapshot_file, capsys):
        assert main([str(snapshot_file)]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["month"] == "012024"
        by_pk = {a["pk"]: a for a in output["allocations"]}
        assert by_pk["C1_S1_A"]["allocated"]["c1"] == "80"
        assert by_pk["C1_W1_A"]["allocated"]["c2"] == "30"
        assert output["banking"] == [
            {"pk": "C1_W1", "banked": {"c1": "0", "c2": "20", "c3": "0", "c4": "0", "c5": "0"}}
        ]
        assert output["lapse"][0]["pk"] == "C1_S1"
        assert output["balanced"] is False

    def test_persists_with_db_url(self, snapshot_file, tmp_path, capsys):
        db_path = tmp_path / "energy.db"
        try:
            code = main([str(snapshot_file), "--db-url", f"sqlite:///{db_path}"])
        finally:
            reset_engine()

        assert code == 0
        assert db_path.exists()
        assert json.loads(capsys.readouterr().out)["allocations"]

    def test_invalid_snapshot_exits_non_zero(self, tmp_path, capsys):
        data = dict(SNAPSHOT, month="132024")
        path = tmp_path / "bad_month.yaml"
        path.write_text(yaml.safe_dump(data))

        assert main([str(path)]) == 1
        assert "error:" in capsys.readouterr().err
