from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from game_logic import WHITE, BLACK, Move
from simulation.config import TrainingConfig, load_config
from simulation.knowledge_store import KnowledgeStore
from simulation.training_loop import TrainingLoop, IllegalMoveError, GAME_MODES, TRAINING_MODE
import logging
import os
import threading

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI()

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],  # Frontend URL
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TrainingParameters(BaseModel):
    epsilon: Optional[float] = Field(None, ge=0.0, le=1.0, description="Exploration rate (0-1)")
    learning_rate: Optional[float] = Field(None, gt=0.0, le=1.0, description="Learning rate (0-1]")
    discount: Optional[float] = Field(None, ge=0.0, le=1.0, description="Discount factor (0-1)")
    max_moves: Optional[int] = Field(None, ge=1, le=10000, description="Plies before a game is drawn")


class StepRequest(BaseModel):
    steps: int = Field(1, ge=1, le=10000, description="Maximum number of plies to play")


class ModeRequest(BaseModel):
    mode: str = Field(TRAINING_MODE, description="'training' or 'human_vs_ai'")
    human_color: str = Field(WHITE, description="Side played by the human")


class HumanMoveRequest(BaseModel):
    from_row: int = Field(..., ge=0, le=7)
    from_col: int = Field(..., ge=0, le=7)
    to_row: int = Field(..., ge=0, le=7)
    to_col: int = Field(..., ge=0, le=7)


# Optional JSON config, same format as the batch trainer's --config
CONFIG_PATH = os.environ.get("Q_CHESS_CONFIG")
config = load_config(CONFIG_PATH) if CONFIG_PATH else TrainingConfig()

loop = TrainingLoop(config=config)
store: Optional[KnowledgeStore] = None

# The loop is not thread-safe; every request touching it holds this lock
loop_lock = threading.Lock()


def serialize_result(result: Dict[str, Any]) -> Dict[str, Any]:
    """Make a step/episode result JSON friendly."""
    data = dict(result)
    if isinstance(data.get("move"), Move):
        data["move"] = data["move"].to_dict()
    return data


def on_persistence_error(color: str, error: Exception):
    logger.warning(f"Could not persist {color} knowledge, training continues: {error}")


loop.on_persistence_error = on_persistence_error


@app.on_event("startup")
async def startup_event():
    global store
    store = KnowledgeStore(config.save_path, backup_url=config.backup_url,
                           backup_interval=config.backup_interval)
    with loop_lock:
        for color in (WHITE, BLACK):
            snapshot = store.load(color)
            if snapshot is not None and not loop.agent_for(color).q_table.import_snapshot(snapshot):
                logger.warning(f"Ignoring malformed stored {color} Q-table")
        loop.persistence_hook = store
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    if store is not None:
        store.wait_for_backups(timeout=store.timeout)


@app.get("/")
def root():
    logger.info("Root endpoint accessed")
    return {"message": "Welcome to the Q-Learning Chess Backend"}


@app.get("/state")
def get_state():
    with loop_lock:
        return loop.get_snapshot()


@app.get("/valid-moves/{color}")
def get_valid_moves(color: str):
    if color not in (WHITE, BLACK):
        raise HTTPException(status_code=400, detail=f"Unknown color: {color}")
    with loop_lock:
        return [move.to_dict() for move in loop.board.get_all_valid_moves(color)]


@app.get("/metrics")
def get_metrics():
    with loop_lock:
        return loop.get_metrics()


@app.get("/parameters")
def get_parameters():
    with loop_lock:
        return loop.get_parameters()


@app.post("/parameters")
def set_parameters(params: TrainingParameters):
    with loop_lock:
        try:
            loop.set_parameters(**params.model_dump(exclude_none=True))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        logger.info(f"Training parameters updated: {loop.get_parameters()}")
        return loop.get_parameters()


@app.post("/start")
def start_training():
    with loop_lock:
        loop.start()
        return loop.get_snapshot()


@app.post("/pause")
def pause_training():
    with loop_lock:
        loop.pause()
        return loop.get_snapshot()


@app.post("/reset-episode")
def reset_episode():
    with loop_lock:
        loop.reset_episode()
        return loop.get_snapshot()


@app.post("/reset-training")
def reset_training():
    with loop_lock:
        loop.reset_training()
        logger.info("Training reset, all knowledge cleared")
        return loop.get_snapshot()


@app.post("/step")
def step(request: Optional[StepRequest] = None):
    steps = request.steps if request is not None else 1
    with loop_lock:
        result = loop.training_batch(steps)
        return {"result": serialize_result(result), "state": loop.get_snapshot()}


@app.post("/mode")
def set_mode(request: ModeRequest):
    if request.mode not in GAME_MODES:
        raise HTTPException(status_code=400, detail=f"Unknown mode: {request.mode}")
    with loop_lock:
        try:
            loop.set_game_mode(request.mode, request.human_color)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return loop.get_snapshot()


@app.post("/human-move")
def human_move(request: HumanMoveRequest):
    from_sq = (request.from_row, request.from_col)
    to_sq = (request.to_row, request.to_col)

    with loop_lock:
        move = loop.find_legal_move(from_sq, to_sq) if loop.is_human_turn() else None
        if move is None:
            raise HTTPException(status_code=400, detail=f"Illegal move {from_sq} -> {to_sq}")

        try:
            result = loop.play_human_move(move)
        except IllegalMoveError as e:
            raise HTTPException(status_code=400, detail=str(e))

        ai_result = None
        if not result.get("game_complete") and loop.is_running:
            ai_result = loop.step()
            # Ends the game right away if the human has no reply left
            if not ai_result.get("game_complete"):
                terminal = loop.step()
                if terminal.get("game_complete"):
                    ai_result = terminal

        return {
            "result": serialize_result(result),
            "ai_result": serialize_result(ai_result) if ai_result is not None else None,
            "state": loop.get_snapshot()
        }


@app.get("/knowledge")
def export_knowledge():
    with loop_lock:
        return loop.export_knowledge()


@app.post("/knowledge")
def import_knowledge(knowledge: Dict[str, Any]):
    with loop_lock:
        if not loop.import_knowledge(knowledge):
            raise HTTPException(status_code=400, detail="Malformed knowledge data")
        loop.save_knowledge()
        return loop.get_metrics()
