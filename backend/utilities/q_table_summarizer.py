import json
import os
import sys
import pandas as pd

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK

COLUMNS = ["state", "color", "material", "action", "q_value"]


# Resolve output directory path
def get_output_dir():
    """Get the output directory path"""
    # Make paths work correctly regardless of where it's run from
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return os.path.join(base_dir, "simulation_results", "q_table_report")


def get_q_tables_dir():
    """Get the q_tables directory path"""
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return os.path.join(base_dir, "simulation_results", "q_tables")


def load_json_file(file_path):
    """Load a JSON file and return its contents"""
    try:
        with open(file_path, 'r') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        print(f"Error loading {file_path}: {e}")
        return None


def get_metadata(q_tables_dir=None):
    """Load and return the metadata file"""
    metadata_path = os.path.join(q_tables_dir or get_q_tables_dir(), "metadata.json")
    return load_json_file(metadata_path)


def load_q_table(q_tables_dir, color):
    """Load the stored snapshot of one color"""
    return load_json_file(os.path.join(q_tables_dir, f"{color}_q_table.json"))


def decode_state_key(state_key):
    """Split a state key back into (board hash, color, material delta)."""
    try:
        state = json.loads(state_key)
        return state["board"], state["color"], state["material"]
    except (ValueError, TypeError, KeyError):
        return state_key, None, None


def snapshot_to_frame(snapshot):
    """One row per (state, action) entry of a snapshot."""
    rows = []
    for state_key, entries in (snapshot or {}).items():
        board, color, material = decode_state_key(state_key)
        for action, q_value in entries:
            rows.append({
                "state": board,
                "color": color,
                "material": material,
                "action": action,
                "q_value": q_value
            })
    frame = pd.DataFrame(rows, columns=COLUMNS)
    frame["q_value"] = frame["q_value"].astype(float)
    return frame


def analyze_q_table(frame):
    """Summary statistics of a snapshot frame"""
    if frame.empty:
        return {
            "num_states": 0,
            "num_entries": 0,
            "avg_actions_per_state": 0.0,
            "max_q_value": 0.0,
            "min_q_value": 0.0,
            "avg_q_value": 0.0
        }

    actions_per_state = frame.groupby("state")["action"].count()
    return {
        "num_states": int(frame["state"].nunique()),
        "num_entries": int(len(frame)),
        "avg_actions_per_state": float(actions_per_state.mean()),
        "max_q_value": float(frame["q_value"].max()),
        "min_q_value": float(frame["q_value"].min()),
        "avg_q_value": float(frame["q_value"].mean())
    }


def material_breakdown(frame):
    """Q-value statistics grouped by material delta"""
    if frame.empty:
        return pd.DataFrame(columns=["material", "entries", "mean_q", "max_q"])
    grouped = frame.groupby("material")["q_value"].agg(["count", "mean", "max"]).reset_index()
    grouped.columns = ["material", "entries", "mean_q", "max_q"]
    return grouped.sort_values("material").reset_index(drop=True)


def top_actions(frame, n=10):
    """Highest valued (state, action) entries"""
    if frame.empty:
        return frame[["material", "action", "q_value"]]
    return frame.nlargest(n, "q_value")[["material", "action", "q_value"]].reset_index(drop=True)


def generate_report(q_tables_dir=None, output_dir=None):
    """Write a markdown summary and CSV tables for both Q-tables. Returns the summary dict."""
    q_tables_dir = q_tables_dir or get_q_tables_dir()
    output_dir = output_dir or get_output_dir()
    os.makedirs(output_dir, exist_ok=True)

    metadata = get_metadata(q_tables_dir) or {}
    summary = {}
    frames = {}
    for color in (WHITE, BLACK):
        frames[color] = snapshot_to_frame(load_q_table(q_tables_dir, color))
        summary[color] = analyze_q_table(frames[color])

    with open(os.path.join(output_dir, "q_table_summary.md"), "w") as f:
        f.write("# Q-Learning Chess Agent Summary\n\n")

        f.write("## Training Information\n\n")
        f.write(f"* Completed episodes: {metadata.get('completed_episodes', 0)}\n")
        f.write(f"* White wins: {metadata.get('white_wins', 0)}\n")
        f.write(f"* Black wins: {metadata.get('black_wins', 0)}\n")
        f.write(f"* Draws: {metadata.get('draws', 0)}\n")
        f.write(f"* Final exploration rate: {metadata.get('exploration_rate')}\n\n")

        for color in (WHITE, BLACK):
            stats = summary[color]
            f.write(f"## {color.capitalize()} Q-Table\n\n")
            f.write("| Statistic | Value |\n|---|---|\n")
            for name, value in stats.items():
                f.write(f"| {name} | {value:.3f} |\n" if isinstance(value, float) else f"| {name} | {value} |\n")
            f.write("\n")

            breakdown = material_breakdown(frames[color])
            if not breakdown.empty:
                f.write("### Q-values by material balance\n\n")
                f.write("| Material | Entries | Mean Q | Max Q |\n|---|---|---|---|\n")
                for row in breakdown.itertuples(index=False):
                    f.write(f"| {row.material} | {row.entries} | {row.mean_q:.3f} | {row.max_q:.3f} |\n")
                f.write("\n")

    # CSV files for the tabular data
    for color in (WHITE, BLACK):
        stats_df = pd.DataFrame.from_dict(summary[color], orient='index', columns=["Value"])
        stats_df.to_csv(os.path.join(output_dir, f"{color}_stats.csv"))
        material_breakdown(frames[color]).to_csv(os.path.join(output_dir, f"{color}_material.csv"), index=False)
        top_actions(frames[color]).to_csv(os.path.join(output_dir, f"{color}_top_actions.csv"), index=False)

    print(f"Report generated successfully in the '{output_dir}' directory")
    return summary


if __name__ == "__main__":
    generate_report()
