import os
import sys
import time
import signal
import argparse
import logging

# Allow running as a script from the backend directory or the repository root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK
from simulation.config import TrainingConfig, load_config
from simulation.knowledge_store import KnowledgeStore
from simulation.training_loop import TrainingLoop

logger = logging.getLogger(__name__)

# Global variable to track if we're interrupted
interrupted = False


def signal_handler(sig, frame):
    """Handle keyboard interrupts gracefully"""
    global interrupted
    print("\nInterrupted by user, finishing current episode and saving...")
    interrupted = True


def restore_knowledge(loop: TrainingLoop, store: KnowledgeStore) -> int:
    """Load stored Q-tables into the agents. Returns how many tables were loaded."""
    loaded = 0
    for color in (WHITE, BLACK):
        snapshot = store.load(color)
        if snapshot is None:
            continue
        if loop.agent_for(color).q_table.import_snapshot(snapshot):
            logger.info(f"Loaded {color} Q-table from {store.table_path(color)}")
            loaded += 1
        else:
            print(f"Warning: stored {color} Q-table is malformed, starting {color} from scratch")
    return loaded


def run_training(config: TrainingConfig, store: KnowledgeStore = None) -> TrainingLoop:
    """Run self-play training with the given configuration, resuming from saved metadata."""
    global interrupted
    interrupted = False

    if store is None:
        store = KnowledgeStore(config.save_path, backup_url=config.backup_url,
                               backup_interval=config.backup_interval)

    metadata = store.load_metadata()
    completed_episodes = metadata["completed_episodes"]
    epsilon = metadata["exploration_rate"] if metadata["exploration_rate"] is not None else config.epsilon
    white_wins = metadata["white_wins"]
    black_wins = metadata["black_wins"]
    draws = metadata["draws"]
    total_training_time = metadata["training_seconds"]

    loop = TrainingLoop(config=config, persistence_hook=store)
    loop.set_parameters(epsilon=epsilon)

    if completed_episodes > 0:
        loaded = restore_knowledge(loop, store)
        print(f"Resuming training from episode {completed_episodes + 1} ({loaded} Q-tables loaded)")

    remaining_episodes = config.episodes - completed_episodes
    print(f"Starting self-play training for {max(0, remaining_episodes)} more episodes...")
    print(f"Current statistics - White wins: {white_wins}, Black wins: {black_wins}, Draws: {draws}")

    start_time = time.time()
    episode = completed_episodes
    loop.start()

    def write_metadata():
        store.save_metadata({
            "completed_episodes": episode,
            "exploration_rate": loop.epsilon,
            "white_wins": white_wins,
            "black_wins": black_wins,
            "draws": draws,
            "training_seconds": time.time() - start_time + total_training_time
        })

    try:
        while episode < config.episodes:
            if interrupted:
                print("Training interrupted by user")
                break

            result = loop.run_episode()
            episode += 1

            if result["result"] == WHITE:
                white_wins += 1
            elif result["result"] == BLACK:
                black_wins += 1
            else:
                draws += 1

            if episode % config.report_interval == 0 or episode == completed_episodes + 1:
                elapsed_time = time.time() - start_time + total_training_time
                print(f"Episode {episode}/{config.episodes}, Epsilon: {loop.epsilon:.3f}, "
                      f"Game Length: {result['moves']}, Result: {result['result']} ({result['reason']}), "
                      f"W/B/D: {white_wins}/{black_wins}/{draws}, Elapsed: {elapsed_time:.1f}s")

            if episode % config.backup_interval == 0:
                write_metadata()

            # Decay epsilon
            if config.exploration_decay < 1.0:
                loop.set_parameters(epsilon=max(config.min_exploration_rate, loop.epsilon * config.exploration_decay))
    finally:
        loop.pause()
        write_metadata()
        store.wait_for_backups(timeout=store.timeout)

        current_time = time.time() - start_time + total_training_time
        print("\nTraining complete!")
        print(f"Completed {episode} episodes.")
        print(f"Final statistics - White wins: {white_wins}, Black wins: {black_wins}, Draws: {draws}")
        print(f"Total training time: {current_time:.1f} seconds")

    return loop


def main():
    """Main function to parse arguments and run training"""
    parser = argparse.ArgumentParser(description='Train Q-learning chess agents through self-play')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to training configuration JSON file')
    parser.add_argument('--episodes', type=int, default=None, help='Total number of episodes to reach')
    parser.add_argument('--save-path', type=str, default=None, help='Directory for Q-tables and metadata')
    parser.add_argument('--epsilon', type=float, default=None, help='Initial exploration rate')
    parser.add_argument('--max-moves', type=int, default=None, help='Plies before a game is drawn')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--log-level', type=str, default='WARNING', help='Logging level')
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config) if args.config else TrainingConfig()
        overrides = {
            "episodes": args.episodes,
            "save_path": args.save_path,
            "epsilon": args.epsilon,
            "max_moves": args.max_moves,
            "seed": args.seed
        }
        config = TrainingConfig.from_dict({**config.to_dict(),
                                           **{k: v for k, v in overrides.items() if v is not None}})
    except (OSError, ValueError) as e:
        print(f"Error loading config: {e}")
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    run_training(config)


if __name__ == "__main__":
    main()
