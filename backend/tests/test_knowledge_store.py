#!/usr/bin/env python3
import sys
import os
import json
import tempfile
import unittest
from unittest import mock

import requests

# Add parent directory to path to make imports work in test
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK
from simulation.knowledge_store import KnowledgeStore, DEFAULT_METADATA
from simulation.training_loop import TrainingLoop

SNAPSHOT = {'{"board": "x", "color": "white", "material": 0}': [["6,4-4,4", 0.5]]}


class TestKnowledgeStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.errors = []
        self.store = KnowledgeStore(os.path.join(self.tmp.name, "q_tables"),
                                    on_error=lambda operation, error: self.errors.append(operation))

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_and_load(self):
        self.assertTrue(self.store.save(WHITE, SNAPSHOT))
        self.assertTrue(os.path.exists(self.store.table_path(WHITE)))
        self.assertEqual(self.store.load(WHITE), SNAPSHOT)
        self.assertIsNone(self.store.load(BLACK))
        self.assertEqual(self.store.save_count, 1)

    def test_hook_signature(self):
        self.store(BLACK, SNAPSHOT)
        self.assertEqual(self.store.load(BLACK), SNAPSHOT)

    def test_unserialisable_snapshot_is_reported(self):
        self.assertFalse(self.store.save(WHITE, {"state": object()}))
        self.assertEqual(self.errors, ["save"])

    def test_corrupt_file_is_reported(self):
        with open(self.store.table_path(WHITE), "w") as f:
            f.write("{not json")
        self.assertIsNone(self.store.load(WHITE))
        self.assertEqual(self.errors, ["load"])

    def test_metadata_defaults_and_round_trip(self):
        self.assertEqual(self.store.load_metadata(), DEFAULT_METADATA)
        self.store.save_metadata({"completed_episodes": 12, "white_wins": 3})
        metadata = self.store.load_metadata()
        self.assertEqual(metadata["completed_episodes"], 12)
        self.assertEqual(metadata["white_wins"], 3)
        self.assertEqual(metadata["draws"], 0)

    def test_backup_without_url(self):
        self.assertFalse(self.store.backup({WHITE: SNAPSHOT}))


class TestRemoteBackup(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.errors = []
        self.store = KnowledgeStore(self.tmp.name, backup_url="http://backup.invalid/q", backup_interval=2,
                                    on_error=lambda operation, error: self.errors.append((operation, error)))

    def tearDown(self):
        self.tmp.cleanup()

    @mock.patch("simulation.knowledge_store.requests.post")
    def test_backup_posts_snapshots(self, post):
        post.return_value.raise_for_status.return_value = None
        self.assertTrue(self.store.backup({WHITE: SNAPSHOT}))

        args, kwargs = post.call_args
        self.assertEqual(args[0], "http://backup.invalid/q")
        self.assertEqual(kwargs["json"]["knowledge"], {WHITE: SNAPSHOT})
        self.assertEqual(kwargs["timeout"], self.store.timeout)
        self.assertIsNotNone(self.store.last_backup)

    @mock.patch("simulation.knowledge_store.requests.post")
    def test_network_failure_is_reported(self, post):
        post.side_effect = requests.ConnectionError("unreachable")
        self.assertFalse(self.store.backup({WHITE: SNAPSHOT}))
        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.errors[0][0], "backup")
        self.assertIsInstance(self.errors[0][1], requests.ConnectionError)

    @mock.patch("simulation.knowledge_store.requests.post")
    def test_http_error_is_reported(self, post):
        post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        self.assertFalse(self.store.backup({WHITE: SNAPSHOT}))
        self.assertEqual(self.errors[0][0], "backup")

    def test_backup_runs_every_interval_with_both_colors(self):
        black_snapshot = {"other": [["1,4-3,4", -0.25]]}
        with mock.patch.object(self.store, "backup_async") as backup_async:
            self.store.save(WHITE, SNAPSHOT)
            backup_async.assert_not_called()
            self.store.save(BLACK, black_snapshot)
            backup_async.assert_called_once_with({WHITE: SNAPSHOT, BLACK: black_snapshot})

    def test_training_backs_up_both_tables(self):
        loop = TrainingLoop(seed=4, persistence_hook=self.store)
        loop.set_parameters(max_moves=2)
        loop.start()
        with mock.patch.object(self.store, "backup_async") as backup_async:
            for _ in range(3):
                loop.run_episode()

        payloads = [call.args[0] for call in backup_async.call_args_list]
        self.assertEqual(len(payloads), 3)
        for payload in payloads:
            self.assertEqual(set(payload), {WHITE, BLACK})
        self.assertEqual(payloads[-1][WHITE], loop.white_agent.q_table.export_snapshot())

    @mock.patch("simulation.knowledge_store.requests.post")
    def test_failed_async_backup_does_not_affect_local_save(self, post):
        post.side_effect = requests.Timeout("slow")
        self.assertTrue(self.store.save(WHITE, SNAPSHOT))
        self.assertTrue(self.store.save(WHITE, SNAPSHOT))
        self.store.wait_for_backups(timeout=5)
        self.assertEqual([operation for operation, _ in self.errors], ["backup"])
        with open(self.store.table_path(WHITE)) as f:
            self.assertEqual(json.load(f), SNAPSHOT)


if __name__ == "__main__":
    unittest.main()
