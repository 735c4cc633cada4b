"""Tests for run exports."""

import json

import pandas as pd
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from luxor.config import load_config
from luxor.reporting import export_csv, export_json, snapshots_frame, summarize
from luxor.simulation import ScenarioRunner


@pytest.fixture(scope="module")
def result():
    return ScenarioRunner(load_config()).run(num_steps=50)


class TestExport:
    """CSV and JSON exports."""

    def test_frame_has_one_row_per_snapshot(self, result):
        df = snapshots_frame(result)
        assert len(df) == 51
        assert list(df['step']) == list(range(51))
        assert df['reward_token_index'].iloc[-1] == str(result.snapshots[-1]['reward_token_index'])

    def test_csv_export(self, result, tmp_path):
        path = tmp_path / "snapshots.csv"
        export_csv(result, str(path))
        df = pd.read_csv(path, dtype={'native_reward_index': str, 'reward_token_index': str})
        assert len(df) == 51
        assert int(df['total_staked'].iloc[-1]) == result.snapshots[-1]['total_staked']
        assert df['reward_token_index'].iloc[-1] == str(result.snapshots[-1]['reward_token_index'])

    def test_json_export(self, result, tmp_path):
        path = tmp_path / "run.json"
        export_json(result, str(path))
        with open(path) as f:
            data = json.load(f)
        assert data['summary']['config_hash'] == result.config.compute_hash()
        assert data['summary']['steps'] == 50
        assert len(data['snapshots']) == 51
        assert data['events'][0]['event'] == "Initialized"

    def test_summary(self, result):
        summary = summarize(result)
        assert summary['errors'] == 0
        assert summary['final_metrics']['purchases'] == result.snapshots[-1]['total_stake_events']
