import os
import sys
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK
from utilities.q_table_summarizer import (
    load_q_table, get_metadata, get_output_dir, get_q_tables_dir, snapshot_to_frame
)

COLORS = {WHITE: '#FFCC66', BLACK: '#6699CC'}


def visualize_q_tables(q_tables_dir=None, output_dir=None):
    """Generate visualizations for the Q-tables. Returns the list of written files."""
    q_tables_dir = q_tables_dir or get_q_tables_dir()
    vis_dir = os.path.join(output_dir or get_output_dir(), "visualizations")
    os.makedirs(vis_dir, exist_ok=True)

    frames = {color: snapshot_to_frame(load_q_table(q_tables_dir, color)) for color in (WHITE, BLACK)}
    if all(frame.empty for frame in frames.values()):
        print("No Q-table entries to visualize")
        return []

    written = [
        visualize_q_value_distribution(frames, vis_dir),
        visualize_material_heatmap(frames, vis_dir)
    ]

    metadata = get_metadata(q_tables_dir)
    if metadata:
        outcomes = visualize_training_results(metadata, vis_dir)
        if outcomes:
            written.append(outcomes)

    print(f"Visualizations generated successfully in '{vis_dir}' directory")
    return written


def visualize_training_results(metadata, output_dir):
    """Pie chart of game outcomes"""
    labels = ['White Wins', 'Black Wins', 'Draws']
    sizes = [
        metadata.get('white_wins', 0),
        metadata.get('black_wins', 0),
        metadata.get('draws', 0)
    ]

    total = sum(sizes)
    if total == 0:
        return None

    labels = [f"{l} ({s}, {s / total * 100:.1f}%)" for l, s in zip(labels, sizes)]

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.pie(sizes, labels=labels, startangle=90, colors=[COLORS[WHITE], COLORS[BLACK], '#99CC99'])
    ax.axis('equal')

    plt.title('Game Outcomes after Q-Learning Training')
    plt.tight_layout()
    path = os.path.join(output_dir, 'game_outcomes.png')
    plt.savefig(path, dpi=150)
    plt.close()
    return path


def visualize_q_value_distribution(frames, output_dir):
    """Histogram of Q-values for both agents"""
    all_values = pd.concat([frame["q_value"] for frame in frames.values()])
    bins = np.linspace(all_values.min(), all_values.max() + 1e-9, 50)

    fig, ax = plt.subplots(figsize=(12, 6))
    for color, frame in frames.items():
        if not frame.empty:
            ax.hist(frame["q_value"], bins=bins, alpha=0.7, label=f'{color.capitalize()} Q-values',
                    color=COLORS[color])

    ax.set_xlabel('Q-value')
    ax.set_ylabel('Frequency')
    ax.set_title('Distribution of Q-values')
    ax.legend()

    plt.tight_layout()
    path = os.path.join(output_dir, 'q_value_distribution.png')
    plt.savefig(path, dpi=150)
    plt.close()
    return path


def visualize_material_heatmap(frames, output_dir):
    """Mean Q-value per material balance for each agent"""
    columns = {}
    for color, frame in frames.items():
        if not frame.empty:
            columns[color.capitalize()] = frame.groupby("material")["q_value"].mean()
    heatmap_data = pd.DataFrame(columns).sort_index()

    plt.figure(figsize=(6, max(4, len(heatmap_data) * 0.4)))
    sns.heatmap(heatmap_data, annot=True, cmap='YlGnBu', fmt='.2f')
    plt.title('Mean Q-value by Material Balance')
    plt.ylabel('Material balance')
    plt.tight_layout()
    path = os.path.join(output_dir, 'material_heatmap.png')
    plt.savefig(path, dpi=150)
    plt.close()
    return path


if __name__ == "__main__":
    visualize_q_tables()
