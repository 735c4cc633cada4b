"""Export functionality for CSV and JSON."""

import json
from typing import Any, Dict

import pandas as pd

from ..simulation.runner import SimulationResult


def snapshots_frame(result: SimulationResult) -> pd.DataFrame:
    """Snapshots as a DataFrame, one row per step."""
    df = pd.DataFrame(result.snapshots)
    if not df.empty:
        df = df.set_index('step', drop=False)
        # Indices exceed int64; keep them exact as strings
        for column in ('native_reward_index', 'reward_token_index'):
            df[column] = df[column].astype(str)
    return df


def export_csv(result: SimulationResult, filepath: str):
    """Export simulation snapshots to CSV."""
    snapshots_frame(result).to_csv(filepath, index=False)


def summarize(result: SimulationResult) -> Dict[str, Any]:
    """Headline numbers for a run."""
    return {
        'config_hash': result.config.compute_hash(),
        'steps': len(result.snapshots) - 1,
        'final_metrics': result.final_metrics,
        'rejected': result.rejected,
        'errors': len(result.errors),
    }


def export_json(result: SimulationResult, filepath: str):
    """Export simulation results to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'summary': summarize(result),
        'snapshots': result.snapshots,
        'events': [event.to_dict() for event in result.events],
        'warnings': [
            {
                'severity': w.severity,
                'category': w.category,
                'message': w.message,
                'details': w.details,
            }
            for w in result.warnings
        ],
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
