#!/usr/bin/env python3
import sys
import os
import io
import tempfile
import unittest
from contextlib import redirect_stdout

# Add parent directory to path to make imports work in test
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK
from simulation.config import TrainingConfig
from simulation.knowledge_store import KnowledgeStore
from simulation.run_q_agent_training import run_training


class TestBatchTraining(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.save_path = os.path.join(self.tmp.name, "q_tables")

    def tearDown(self):
        self.tmp.cleanup()

    def run_quietly(self, **settings):
        config = TrainingConfig(save_path=self.save_path, max_moves=6, seed=3, report_interval=1, **settings)
        with redirect_stdout(io.StringIO()):
            return run_training(config)

    def test_training_saves_tables_and_metadata(self):
        loop = self.run_quietly(episodes=2)
        store = KnowledgeStore(self.save_path)
        metadata = store.load_metadata()

        self.assertEqual(metadata["completed_episodes"], 2)
        self.assertEqual(metadata["white_wins"] + metadata["black_wins"] + metadata["draws"], 2)
        self.assertEqual(store.load(WHITE), loop.white_agent.q_table.export_snapshot())
        self.assertIsNotNone(store.load(BLACK))
        self.assertFalse(loop.is_running)

    def test_training_resumes(self):
        self.run_quietly(episodes=2)
        loop = self.run_quietly(episodes=3)
        metadata = KnowledgeStore(self.save_path).load_metadata()
        self.assertEqual(metadata["completed_episodes"], 3)
        self.assertEqual(loop.get_metrics()["total_games"], 1)

    def test_exploration_decays(self):
        loop = self.run_quietly(episodes=3, epsilon=0.5, exploration_decay=0.5, min_exploration_rate=0.1)
        self.assertAlmostEqual(loop.epsilon, 0.1)
        self.assertAlmostEqual(KnowledgeStore(self.save_path).load_metadata()["exploration_rate"], 0.1)


if __name__ == "__main__":
    unittest.main()
