#!/usr/bin/env python3
import sys
import os
import json
import unittest

# Add parent directory to path to make imports work in test
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from game_logic import WHITE, BLACK, PAWN, Move
from models.board import Board
from simulation.config import TrainingConfig
from simulation.training_loop import (
    TrainingLoop, LoopStatus, IllegalMoveError, HUMAN_MODE, TRAINING_MODE
)


def fools_mate_board():
    board = Board()
    board.move_piece((6, 5), (5, 5))
    board.move_piece((1, 4), (3, 4))
    board.move_piece((6, 6), (4, 6))
    board.move_piece((0, 3), (4, 7))
    return board


class TestTrainingLoopStateMachine(unittest.TestCase):

    def setUp(self):
        self.loop = TrainingLoop(seed=3)

    def test_initial_state(self):
        self.assertEqual(self.loop.status, LoopStatus.IDLE)
        self.assertEqual(self.loop.current_episode, 1)
        self.assertEqual(self.loop.current_move, 0)
        self.assertEqual(self.loop.current_color, WHITE)
        self.assertEqual(self.loop.get_parameters(),
                         {"epsilon": 0.1, "learning_rate": 0.1, "discount": 0.9, "max_moves": 200})

    def test_step_while_paused_does_nothing(self):
        before = self.loop.board.position_hash()
        self.assertEqual(self.loop.step(), {"game_complete": False})
        self.assertEqual(self.loop.board.position_hash(), before)
        self.assertEqual(self.loop.current_move, 0)

    def test_step_plays_one_ply(self):
        self.loop.start()
        result = self.loop.step()
        self.assertFalse(result["game_complete"])
        self.assertIsInstance(result["move"], Move)
        self.assertEqual(self.loop.current_move, 1)
        self.assertEqual(self.loop.current_color, BLACK)
        self.assertEqual(len(self.loop.episode_history), 1)
        self.assertEqual(self.loop.episode_history[0]["color"], WHITE)
        self.assertGreater(self.loop.white_agent.q_table.size(), 0)

    def test_pause_stops_stepping(self):
        self.loop.start()
        self.loop.step()
        self.loop.pause()
        self.assertFalse(self.loop.is_running)
        self.loop.step()
        self.assertEqual(self.loop.current_move, 1)

    def test_max_moves_ends_in_draw(self):
        self.loop.set_parameters(max_moves=2)
        self.loop.start()
        result = self.loop.training_batch(10)
        self.assertEqual(result, {"game_complete": True, "result": "draw", "reason": "max_moves", "moves": 2})
        self.assertEqual(self.loop.current_episode, 2)
        self.assertEqual(self.loop.current_move, 0)
        self.assertEqual(self.loop.status, LoopStatus.RUNNING)

        metrics = self.loop.get_metrics()
        self.assertEqual(metrics["total_games"], 1)
        self.assertEqual(metrics["draws"], 1)
        self.assertEqual(metrics["avg_moves_per_game"], 2)
        self.assertEqual(self.loop.white_agent.games_drawn, 1)

    def test_checkmate_on_the_board_ends_episode(self):
        self.loop.board.load_state(fools_mate_board())
        self.loop.start()
        result = self.loop.step()
        self.assertTrue(result["game_complete"])
        self.assertEqual(result["result"], BLACK)
        self.assertEqual(result["reason"], "checkmate")
        self.assertEqual(self.loop.get_metrics()["black_wins"], 1)
        self.assertEqual(self.loop.black_agent.games_won, 1)
        # A fresh game is set up
        self.assertEqual(self.loop.board.position_hash(), Board().position_hash())

    def test_fifty_move_rule_ends_episode(self):
        self.loop.board.half_move_clock = 100
        self.loop.start()
        result = self.loop.step()
        self.assertEqual(result, {"game_complete": True, "result": "draw", "reason": "50_move_rule", "moves": 0})
        self.assertEqual(self.loop.get_metrics()["draws"], 1)
        self.assertEqual(self.loop.board.half_move_clock, 0)

    def test_threefold_repetition_ends_episode(self):
        for _ in range(2):
            self.loop.board.move_piece((7, 6), (5, 5))
            self.loop.board.move_piece((0, 6), (2, 5))
            self.loop.board.move_piece((5, 5), (7, 6))
            self.loop.board.move_piece((2, 5), (0, 6))
        self.loop.start()
        result = self.loop.step()
        self.assertTrue(result["game_complete"])
        self.assertEqual(result["result"], "draw")
        self.assertEqual(result["reason"], "threefold_repetition")
        self.assertEqual(self.loop.get_metrics()["draws"], 1)

    def test_stalemated_side_to_move_ends_episode(self):
        self.loop.board.load_state(Board.from_rows([
            "k.......",
            "........",
            ".Q......",
            "........",
            "........",
            "........",
            "........",
            ".......K",
        ], side_to_move=BLACK))
        self.loop.current_color = BLACK
        self.loop.start()
        result = self.loop.step()
        self.assertEqual(result["result"], "draw")
        self.assertEqual(result["reason"], "stalemate")
        metrics = self.loop.get_metrics()
        self.assertEqual(metrics["draws"], 1)
        self.assertEqual(metrics["total_games"], 1)
        self.assertEqual(self.loop.black_agent.games_drawn, 1)

    def test_final_position_is_logged(self):
        self.loop.set_parameters(max_moves=1)
        self.loop.start()
        with self.assertLogs("simulation.training_loop", level="DEBUG") as logs:
            self.loop.run_episode()
        self.assertTrue(any("Final position:" in line and "a b c d e f g h" in line for line in logs.output))

    def test_game_complete_callback(self):
        games = []
        self.loop.on_game_complete = games.append
        self.loop.set_parameters(max_moves=3)
        self.loop.start()
        self.loop.run_episode()
        self.assertEqual(len(games), 1)
        self.assertEqual(games[0]["game"], 1)
        self.assertEqual(len(games[0]["history"]), 3)

    def test_callback_may_pause_the_loop(self):
        self.loop.on_game_complete = lambda game: self.loop.pause()
        self.loop.set_parameters(max_moves=1)
        self.loop.start()
        self.loop.training_batch(5)
        self.assertEqual(self.loop.status, LoopStatus.IDLE)

    def test_run_episode_requires_running_loop(self):
        with self.assertRaises(RuntimeError):
            self.loop.run_episode()

    def test_reset_episode_keeps_metrics(self):
        self.loop.start()
        self.loop.step()
        self.loop.reset_episode()
        self.assertEqual(self.loop.current_episode, 2)
        self.assertEqual(self.loop.current_move, 0)
        self.assertEqual(self.loop.get_metrics()["total_games"], 0)
        self.assertGreater(self.loop.white_agent.q_table.size(), 0)

    def test_reset_training_forgets_everything(self):
        self.loop.set_parameters(max_moves=2)
        self.loop.start()
        self.loop.run_episode()
        self.loop.reset_training()
        self.assertEqual(self.loop.current_episode, 1)
        self.assertEqual(self.loop.get_metrics()["total_games"], 0)
        self.assertEqual(self.loop.white_agent.q_table.size(), 0)
        self.assertEqual(self.loop.black_agent.q_table.size(), 0)


class TestTrainingParameters(unittest.TestCase):

    def test_config_is_applied(self):
        loop = TrainingLoop(config=TrainingConfig(epsilon=0.5, max_moves=50))
        self.assertEqual(loop.epsilon, 0.5)
        self.assertEqual(loop.max_moves, 50)

    def test_invalid_parameters_change_nothing(self):
        loop = TrainingLoop()
        with self.assertRaises(ValueError):
            loop.set_parameters(learning_rate=0.5, epsilon=1.5)
        self.assertEqual(loop.learning_rate, 0.1)
        with self.assertRaises(ValueError):
            loop.set_parameters(max_moves=0)
        with self.assertRaises(ValueError):
            loop.set_parameters(learning_rate=0.0)

    def test_valid_parameters(self):
        loop = TrainingLoop()
        loop.set_parameters(epsilon=0.0, discount=1.0)
        self.assertEqual(loop.epsilon, 0.0)
        self.assertEqual(loop.discount, 1.0)


class TestPersistence(unittest.TestCase):

    def test_snapshots_are_handed_to_hook(self):
        saved = {}
        loop = TrainingLoop(seed=5, persistence_hook=lambda color, snapshot: saved.update({color: snapshot}))
        loop.set_parameters(max_moves=2)
        loop.start()
        loop.run_episode()
        self.assertEqual(set(saved), {WHITE, BLACK})
        self.assertEqual(saved[WHITE], loop.white_agent.q_table.export_snapshot())

    def test_persistence_failure_does_not_stop_training(self):
        def failing_hook(color, snapshot):
            raise OSError("disk full")

        errors = []
        loop = TrainingLoop(seed=5, persistence_hook=failing_hook)
        loop.on_persistence_error = lambda color, error: errors.append((color, str(error)))
        loop.set_parameters(max_moves=2)
        loop.start()

        result = loop.run_episode()
        self.assertTrue(result["game_complete"])
        self.assertEqual(errors, [(WHITE, "disk full"), (BLACK, "disk full")])
        self.assertEqual(loop.get_metrics()["total_games"], 1)
        self.assertTrue(loop.is_running)
        loop.step()
        self.assertEqual(loop.current_move, 1)

    def test_export_import_round_trip(self):
        loop = TrainingLoop(seed=1)
        loop.start()
        loop.training_batch(4)
        knowledge = json.loads(json.dumps(loop.export_knowledge()))
        self.assertIn("timestamp", knowledge)

        other = TrainingLoop(seed=2)
        self.assertTrue(other.import_knowledge(knowledge))
        self.assertEqual(other.white_agent.q_table.table, loop.white_agent.q_table.table)
        self.assertEqual(other.black_agent.q_table.table, loop.black_agent.q_table.table)

    def test_import_is_all_or_nothing(self):
        loop = TrainingLoop(seed=1)
        loop.start()
        loop.training_batch(2)
        before = loop.export_knowledge()

        good_white = {"state": [["6,4-4,4", 1.0]]}
        self.assertFalse(loop.import_knowledge({WHITE: good_white, BLACK: "garbage"}))
        self.assertFalse(loop.import_knowledge({}))
        self.assertFalse(loop.import_knowledge(["not", "a", "dict"]))
        self.assertEqual(loop.white_agent.q_table.export_snapshot(), before[WHITE])
        self.assertEqual(loop.black_agent.q_table.export_snapshot(), before[BLACK])


class TestHumanPlay(unittest.TestCase):

    def setUp(self):
        self.loop = TrainingLoop(seed=9)
        self.loop.set_game_mode(HUMAN_MODE, WHITE)
        self.loop.start()

    def test_loop_waits_for_human(self):
        result = self.loop.step()
        self.assertEqual(result, {"game_complete": False, "waiting_for_human": True})
        self.assertEqual(self.loop.current_move, 0)

    def test_legal_human_move(self):
        move = self.loop.find_legal_move((6, 4), (4, 4))
        self.assertIsNotNone(move)
        result = self.loop.play_human_move(move)
        self.assertFalse(result["game_complete"])
        self.assertEqual(self.loop.board.get_piece(4, 4).type, PAWN)
        self.assertIsNone(self.loop.board.get_piece(6, 4))
        self.assertEqual(self.loop.current_color, BLACK)
        self.assertEqual(len(self.loop.human_moves), 1)
        # The white agent learns from the human move
        self.assertGreater(self.loop.white_agent.q_table.size(), 0)

        ai_result = self.loop.step()
        self.assertFalse(ai_result["game_complete"])
        self.assertEqual(self.loop.current_color, WHITE)
        self.assertEqual(self.loop.current_move, 2)

    def test_illegal_human_move_is_rejected(self):
        before = self.loop.board.position_hash()
        with self.assertRaises(IllegalMoveError):
            self.loop.play_human_move(Move((6, 4), (3, 4)))
        self.assertEqual(self.loop.board.position_hash(), before)
        self.assertEqual(self.loop.white_agent.q_table.size(), 0)
        self.assertEqual(self.loop.current_move, 0)
        self.assertIsNone(self.loop.find_legal_move((6, 4), (3, 4)))

    def test_human_move_out_of_turn(self):
        self.loop.set_game_mode(HUMAN_MODE, BLACK)
        with self.assertRaises(IllegalMoveError):
            self.loop.play_human_move(Move((1, 4), (3, 4)))

    def test_whole_episodes_need_training_mode(self):
        with self.assertRaises(RuntimeError):
            self.loop.run_episode()
        self.loop.set_game_mode(TRAINING_MODE)
        self.assertFalse(self.loop.is_human_turn())

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            self.loop.set_game_mode("blitz")


if __name__ == "__main__":
    unittest.main()
