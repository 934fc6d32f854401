"""
Learner record persistence.

The scheduler talks to an injected async key-value store. Three adapters are
provided:

- InMemoryKeyValueStore: process-local, used in tests and speed runs
- JsonFileKeyValueStore: one ``<key>.json`` file per key (default CLI store)
- SqlKeyValueStore: SQLAlchemy table ``fluency_state`` (SQLite by default)

StorageManager owns the live StudentState and the fact set content index.
Load failures fall back to a fresh record, save failures are logged.
"""

from __future__ import annotations

import asyncio
import copy
import json
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.fact_sets import build_all_fact_sets
from src.fluency.migrations import (
    MigrationsRegistry,
    build_default_registry,
    deserialize_student_state,
    serialize_student_state,
)
from src.fluency.models import Fact, FactSet
from src.fluency.student_state import FactItem, StudentState
from src.fluency.time_provider import SystemTimeProvider, TimeProvider

DEFAULT_STATE_KEY = "FluencyState"


# =============================================================================
# Key-Value Stores
# =============================================================================


class KeyValueStore(Protocol):
    """Opaque async key-value persistence."""

    async def exists(self, key: str) -> bool: ...

    async def load(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any]) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store; values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(initial) if initial else {}

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def load(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class JsonFileKeyValueStore:
    """
    Stores each key as a JSON file.

    Files are named ``{key}.json`` inside ``state_dir``.
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    async def exists(self, key: str) -> bool:
        return self._path(key).exists()

    async def load(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> bool:
        filepath = self._path(key)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def _read(self, key: str) -> dict[str, Any] | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: dict[str, Any]) -> None:
        filepath = self._path(key)
        tmp_path = filepath.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)
        tmp_path.replace(filepath)


class StateBase(DeclarativeBase):
    pass


class StoredState(StateBase):
    """One persisted value per key."""

    __tablename__ = "fluency_state"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SqlKeyValueStore:
    """
    SQLAlchemy-backed store.

    Blocking database calls run in a worker thread via asyncio.to_thread.
    """

    def __init__(self, database_url: str = "sqlite:///fluency_state.db"):
        self.engine = create_engine(database_url, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        StateBase.metadata.create_all(bind=self.engine)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists, key)

    async def load(self, key: str) -> dict[str, Any] | None:
        payload = await asyncio.to_thread(self._load, key)
        return json.loads(payload) if payload is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        await asyncio.to_thread(self._set, key, json.dumps(value))

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)

    def _exists(self, key: str) -> bool:
        with self.SessionLocal() as session:
            return session.get(StoredState, key) is not None

    def _load(self, key: str) -> str | None:
        with self.SessionLocal() as session:
            row = session.execute(select(StoredState.payload).where(StoredState.key == key)).first()
            return row[0] if row else None

    def _set(self, key: str, payload: str) -> None:
        with self.SessionLocal() as session:
            try:
                row = session.get(StoredState, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    session.add(StoredState(key=key, payload=payload, updated_at=now))
                else:
                    row.payload = payload
                    row.updated_at = now
                session.commit()
            except Exception:  # Intentionally broad - rollback on any error before re-raising
                session.rollback()
                raise

    def _delete(self, key: str) -> bool:
        with self.SessionLocal() as session:
            row = session.get(StoredState, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True


# =============================================================================
# Storage Manager
# =============================================================================


class StorageManager:
    """
    Loads, seeds and saves the learner record.

    The live StudentState is mutated in place by the scheduler components and
    written back through save_state() after each meaningful change.
    """

    def __init__(
        self,
        config: LearningAlgorithmConfig,
        store: KeyValueStore,
        time_provider: TimeProvider | None = None,
        storage_key: str = DEFAULT_STATE_KEY,
        registry: MigrationsRegistry | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.store = store
        self.time_provider = time_provider or SystemTimeProvider()
        self.storage_key = storage_key
        self.registry = registry or build_default_registry()
        self.rng = rng or random.Random()
        self.fact_sets_by_id: dict[str, FactSet] = {}
        self._facts_by_id: dict[str, Fact] = {}
        self._state: StudentState | None = None

    @property
    def student_state(self) -> StudentState:
        if self._state is None:
            raise RuntimeError("StorageManager.initialize() has not been called")
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    async def initialize(self) -> StudentState:
        """
        Load (or synthesize) the learner record and align it with the content.

        Returns:
            The live StudentState
        """
        state = await self._load_state()

        self.fact_sets_by_id = build_all_fact_sets(
            self.config.fact_set_order, self.config.max_multiplication_factor
        )
        self._facts_by_id = {
            fact.id: fact for fact_set in self.fact_sets_by_id.values() for fact in fact_set.facts
        }

        added = self._seed_missing_facts(state)
        removed = self._remove_stale_facts(state)
        self._state = state

        logger.info(
            f"Learner record ready: {len(state.facts)} facts ({added} added, {removed} removed), "
            f"{len(state.answer_history)} answers"
        )
        await self.save_state()
        return state

    async def _load_state(self) -> StudentState:
        now = self.time_provider.now
        if self.config.always_start_fresh:
            logger.info("Starting with a fresh learner record (always_start_fresh)")
            return self.registry.create_new_state(now)

        try:
            if not await self.store.exists(self.storage_key):
                logger.info(f"No stored learner record under '{self.storage_key}', starting fresh")
                return self.registry.create_new_state(now)
            data = await self.store.load(self.storage_key)
            return deserialize_student_state(data, self.registry, now)
        except Exception as e:  # Intentionally broad - any load failure means a fresh record
            logger.error(f"Failed to load learner record '{self.storage_key}': {e}")
            return self.registry.create_new_state(now)

    def _seed_missing_facts(self, state: StudentState) -> int:
        first_stage_id = self.config.get_first_stage().id
        existing = {item.fact_id for item in state.facts}
        added = 0

        for fact_set_id in self.config.fact_set_order:
            fact_set = self.fact_sets_by_id.get(fact_set_id)
            if fact_set is None:
                continue
            new_items = [
                FactItem(fact_id=fact.id, fact_set_id=fact.fact_set_id, stage_id=first_stage_id)
                for fact in fact_set.facts
                if fact.id not in existing
            ]
            self.rng.shuffle(new_items)
            state.facts.extend(new_items)
            existing.update(item.fact_id for item in new_items)
            added += len(new_items)

        return added

    def _remove_stale_facts(self, state: StudentState) -> int:
        before = len(state.facts)
        state.facts = [item for item in state.facts if item.fact_id in self._facts_by_id]
        return before - len(state.facts)

    async def save_state(self) -> bool:
        """Persist the live record. Errors are logged and reported as False."""
        if self._state is None:
            logger.warning("save_state() called before initialize(), nothing to save")
            return False
        try:
            await self.store.set(self.storage_key, serialize_student_state(self._state))
            return True
        except Exception as e:  # Intentionally broad - a failed save must not break the session
            logger.error(f"Failed to save learner record '{self.storage_key}': {e}")
            return False

    def get_fact_by_id(self, fact_id: str) -> Fact | None:
        return self._facts_by_id.get(fact_id)
