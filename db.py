import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable


class StoreError(Exception):
    """Raised when the backing store cannot complete a request."""


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    icon TEXT,
                    exercises TEXT NOT NULL DEFAULT '[]',
                    status TEXT NOT NULL DEFAULT 'pending',
                    duration TEXT NOT NULL DEFAULT '0m',
                    intensity TEXT NOT NULL DEFAULT 'Med',
                    position INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "title",
                "description",
                "icon",
                "exercises",
                "status",
                "duration",
                "intensity",
                "position",
                "created_at",
            ],
        ),
        "profiles": (
            """CREATE TABLE profiles (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    avatar TEXT,
                    email TEXT,
                    level INTEGER NOT NULL DEFAULT 1,
                    weight REAL,
                    height REAL
                );""",
            ["id", "name", "avatar", "email", "level", "weight", "height"],
        ),
        "workout_logs": (
            """CREATE TABLE workout_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    workout_id INTEGER,
                    duration_minutes INTEGER NOT NULL,
                    calories REAL NOT NULL,
                    user_name TEXT,
                    completed_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "workout_id",
                "duration_minutes",
                "calories",
                "user_name",
                "completed_at",
            ],
        ),
        "personal_records": (
            """CREATE TABLE personal_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    weight REAL NOT NULL,
                    reps INTEGER NOT NULL DEFAULT 0,
                    date TEXT NOT NULL,
                    UNIQUE (user_id, exercise_name)
                );""",
            ["id", "user_id", "exercise_name", "weight", "reps", "date"],
        ),
        "exercise_history": (
            """CREATE TABLE exercise_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    weight REAL NOT NULL,
                    reps INTEGER NOT NULL DEFAULT 0,
                    sets INTEGER NOT NULL DEFAULT 0,
                    sets_data TEXT NOT NULL DEFAULT '[]',
                    date TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "exercise_name",
                "weight",
                "reps",
                "sets",
                "sets_data",
                "date",
            ],
        ),
        "session_snapshots": (
            """CREATE TABLE session_snapshots (
                    user_id TEXT NOT NULL,
                    workout_id INTEGER NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, workout_id)
                );""",
            ["user_id", "workout_id", "data", "updated_at"],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_logs_user_time ON workout_logs (user_id, completed_at);",
        "CREATE INDEX IF NOT EXISTS idx_history_user_name ON exercise_history (user_id, exercise_name, date);",
    ]

    def __init__(self, db_path: str = "pulsefit.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for sql in self._INDEXES:
                conn.execute(sql)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return cursor.lastrowid
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return cursor.fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.lastrowid
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e

    async def executemany(self, query: str, rows: Iterable[Tuple]) -> None:
        try:
            async with self._async_connection() as conn:
                await conn.executemany(query, list(rows))
                await conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
                return list(rows)
        except (sqlite3.Error, OSError) as e:
            raise StoreError(str(e)) from e


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


class WorkoutRepository(AsyncBaseRepository):
    """Repository for the user's workout rotation."""

    _COLUMNS = (
        "id, user_id, title, description, icon, exercises, status, duration, intensity, position, created_at"
    )

    @staticmethod
    def _duration_for(exercises: list) -> str:
        return f"{len(exercises) * 10}m"

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": row[0],
            "user_id": row[1],
            "title": row[2],
            "description": row[3],
            "icon": row[4],
            "exercises": json.loads(row[5] or "[]"),
            "status": row[6],
            "duration": row[7],
            "intensity": row[8],
            "position": row[9],
            "created_at": row[10],
        }

    async def create(
        self,
        user_id: str,
        title: str | None = None,
        description: str | None = None,
        icon: str | None = None,
        exercises: list | None = None,
    ) -> int:
        exercises = exercises or []
        rows = await self.fetch_all(
            "SELECT COALESCE(MAX(position), -1) + 1 FROM workouts WHERE user_id = ?;",
            (user_id,),
        )
        position = rows[0][0] if rows else 0
        return await self.execute(
            "INSERT INTO workouts (user_id, title, description, icon, exercises, status, duration, position, created_at) VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?);",
            (
                user_id,
                title or "Sem título",
                description or "Personalizado",
                icon or "fitness_center",
                json.dumps(exercises),
                self._duration_for(exercises),
                position,
                _utc_now(),
            ),
        )

    async def fetch_for_user(self, user_id: str) -> list[dict]:
        rows = await self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workouts WHERE user_id = ? ORDER BY position, created_at, id;",
            (user_id,),
        )
        return [self._row_to_dict(r) for r in rows]

    async def fetch_statuses(self, user_id: str) -> list[tuple[int, str]]:
        rows = await self.fetch_all(
            "SELECT id, status FROM workouts WHERE user_id = ?;",
            (user_id,),
        )
        return [(int(r[0]), r[1]) for r in rows]

    async def fetch_detail(self, workout_id: int) -> dict:
        rows = await self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        return self._row_to_dict(rows[0])

    async def update(
        self,
        workout_id: int,
        title: str | None = None,
        description: str | None = None,
        icon: str | None = None,
        exercises: list | None = None,
    ) -> dict:
        current = await self.fetch_detail(workout_id)
        exercises = exercises if exercises is not None else current["exercises"]
        await self.execute(
            "UPDATE workouts SET title = ?, description = ?, icon = ?, exercises = ?, duration = ? WHERE id = ?;",
            (
                title if title is not None else current["title"],
                description if description is not None else current["description"],
                icon if icon is not None else current["icon"],
                json.dumps(exercises),
                self._duration_for(exercises),
                workout_id,
            ),
        )
        return await self.fetch_detail(workout_id)

    async def add_exercise(self, workout_id: int, exercise: dict) -> dict:
        current = await self.fetch_detail(workout_id)
        return await self.update(workout_id, exercises=current["exercises"] + [exercise])

    async def set_status(self, workout_id: int, status: str) -> None:
        if status not in ("pending", "completed"):
            raise ValueError("invalid status")
        await self.execute(
            "UPDATE workouts SET status = ? WHERE id = ?;",
            (status, workout_id),
        )

    async def toggle_status(self, workout_id: int) -> str:
        current = await self.fetch_detail(workout_id)
        new_status = "pending" if current["status"] == "completed" else "completed"
        await self.set_status(workout_id, new_status)
        return new_status

    async def reset_statuses(self, user_id: str) -> None:
        await self.execute(
            "UPDATE workouts SET status = 'pending' WHERE user_id = ?;",
            (user_id,),
        )

    async def delete(self, workout_id: int) -> None:
        rows = await self.fetch_all(
            "SELECT id FROM workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        await self.execute("DELETE FROM workout_logs WHERE workout_id = ?;", (workout_id,))
        await self.execute(
            "DELETE FROM session_snapshots WHERE workout_id = ?;", (workout_id,)
        )
        await self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))


class ProfileRepository(AsyncBaseRepository):
    """Repository for user profiles."""

    DEFAULT_AVATAR = "https://cdn-icons-png.flaticon.com/512/847/847969.png"
    _FIELDS = ("name", "avatar", "email", "level", "weight", "height")

    def __init__(self, db_path: str = "pulsefit.db", default_name: str = "Novo Usuário") -> None:
        super().__init__(db_path)
        self.default_name = default_name

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": row[0],
            "name": row[1],
            "avatar": row[2],
            "email": row[3],
            "level": row[4],
            "weight": row[5],
            "height": row[6],
        }

    async def fetch(self, user_id: str) -> dict:
        """Return the profile for ``user_id``, creating a default one if missing."""
        rows = await self.fetch_all(
            "SELECT id, name, avatar, email, level, weight, height FROM profiles WHERE id = ?;",
            (user_id,),
        )
        if rows:
            return self._row_to_dict(rows[0])
        await self.execute(
            "INSERT OR IGNORE INTO profiles (id, name, avatar, level, weight, height) VALUES (?, ?, ?, 1, 70, 170);",
            (user_id, self.default_name, self.DEFAULT_AVATAR),
        )
        return await self.fetch(user_id)

    async def fetch_many(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        placeholders = ", ".join("?" for _ in user_ids)
        rows = await self.fetch_all(
            f"SELECT id, name, avatar, email, level, weight, height FROM profiles WHERE id IN ({placeholders});",
            tuple(user_ids),
        )
        return [self._row_to_dict(r) for r in rows]

    async def save(self, user_id: str, **fields) -> dict:
        await self.fetch(user_id)
        updates = {k: v for k, v in fields.items() if k in self._FIELDS}
        if updates:
            assignments = ", ".join(f"{k} = ?" for k in updates)
            await self.execute(
                f"UPDATE profiles SET {assignments} WHERE id = ?;",
                (*updates.values(), user_id),
            )
        return await self.fetch(user_id)


class WorkoutLogRepository(AsyncBaseRepository):
    """Repository for finished workout sessions."""

    async def add(
        self,
        user_id: str,
        workout_id: int | None,
        duration_minutes: int,
        calories: float,
        user_name: str | None = None,
        completed_at: str | None = None,
    ) -> int:
        return await self.execute(
            "INSERT INTO workout_logs (user_id, workout_id, duration_minutes, calories, user_name, completed_at) VALUES (?, ?, ?, ?, ?, ?);",
            (
                user_id,
                workout_id,
                int(duration_minutes),
                calories,
                user_name,
                completed_at or _utc_now(),
            ),
        )

    async def fetch_since(
        self, user_id: str, since: str | None = None
    ) -> list[tuple[int, int | None, int, float, str]]:
        """Return ``(id, workout_id, duration_minutes, calories, completed_at)`` rows."""
        query = "SELECT id, workout_id, duration_minutes, calories, completed_at FROM workout_logs WHERE user_id = ?"
        params: list[str] = [user_id]
        if since is not None:
            query += " AND completed_at >= ?"
            params.append(since)
        query += " ORDER BY completed_at;"
        return await self.fetch_all(query, tuple(params))

    async def fetch_all_since(self, since: str) -> list[tuple[str, str | None, str]]:
        """Return ``(user_id, user_name, completed_at)`` rows for every user."""
        return await self.fetch_all(
            "SELECT user_id, user_name, completed_at FROM workout_logs WHERE completed_at >= ? ORDER BY completed_at;",
            (since,),
        )


class PersonalRecordRepository(AsyncBaseRepository):
    """Repository for per-exercise personal records."""

    async def fetch_for_user(self, user_id: str) -> list[dict]:
        rows = await self.fetch_all(
            "SELECT exercise_name, weight, reps, date FROM personal_records WHERE user_id = ? ORDER BY weight DESC, exercise_name;",
            (user_id,),
        )
        return [
            {"exercise_name": n, "weight": float(w), "reps": int(r), "date": d}
            for n, w, r, d in rows
        ]

    async def upsert(
        self, user_id: str, exercise_name: str, weight: float, reps: int, date: str
    ) -> None:
        await self.execute(
            "INSERT INTO personal_records (user_id, exercise_name, weight, reps, date) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, exercise_name) DO UPDATE SET weight=excluded.weight, reps=excluded.reps, date=excluded.date;",
            (user_id, exercise_name, weight, reps, date),
        )


class ExerciseHistoryRepository(AsyncBaseRepository):
    """Append-only log of per-exercise performance."""

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": row[0],
            "exercise_name": row[1],
            "weight": float(row[2]),
            "reps": int(row[3]),
            "sets": int(row[4]),
            "sets_data": json.loads(row[5] or "[]"),
            "date": row[6],
        }

    async def bulk_add(self, user_id: str, entries: Iterable[dict]) -> None:
        await self.executemany(
            "INSERT INTO exercise_history (user_id, exercise_name, weight, reps, sets, sets_data, date) VALUES (?, ?, ?, ?, ?, ?, ?);",
            [
                (
                    user_id,
                    e["exercise_name"],
                    e["weight"],
                    e.get("reps", 0),
                    e.get("sets", 0),
                    json.dumps(e.get("sets_data", [])),
                    e.get("date") or _utc_now(),
                )
                for e in entries
            ],
        )

    async def fetch_for_exercise(
        self, user_id: str, exercise_name: str, limit: int = 20
    ) -> list[dict]:
        rows = await self.fetch_all(
            "SELECT id, exercise_name, weight, reps, sets, sets_data, date FROM exercise_history "
            "WHERE user_id = ? AND exercise_name = ? ORDER BY date DESC, id DESC LIMIT ?;",
            (user_id, exercise_name, limit),
        )
        return [self._row_to_dict(r) for r in rows]

    async def fetch_latest_by_names(
        self, user_id: str, names: list[str]
    ) -> dict[str, dict]:
        """Return the newest entry for each of ``names`` keyed by exercise name."""
        if not names:
            return {}
        placeholders = ", ".join("?" for _ in names)
        rows = await self.fetch_all(
            "SELECT id, exercise_name, weight, reps, sets, sets_data, date FROM exercise_history "
            f"WHERE user_id = ? AND exercise_name IN ({placeholders}) ORDER BY date DESC, id DESC;",
            (user_id, *names),
        )
        latest: dict[str, dict] = {}
        for row in rows:
            entry = self._row_to_dict(row)
            latest.setdefault(entry["exercise_name"], entry)
        return latest

    async def fetch_since(self, user_id: str, since: str) -> list[dict]:
        rows = await self.fetch_all(
            "SELECT id, exercise_name, weight, reps, sets, sets_data, date FROM exercise_history "
            "WHERE user_id = ? AND date >= ? ORDER BY date;",
            (user_id, since),
        )
        return [self._row_to_dict(r) for r in rows]


class SessionSnapshotRepository(BaseRepository):
    """Local key/value store for in-progress session snapshots."""

    def get(self, user_id: str, workout_id: int) -> Optional[dict]:
        rows = self.fetch_all(
            "SELECT data FROM session_snapshots WHERE user_id = ? AND workout_id = ?;",
            (user_id, workout_id),
        )
        if not rows:
            return None
        return json.loads(rows[0][0])

    def set(self, user_id: str, workout_id: int, data: dict) -> None:
        self.execute(
            "INSERT INTO session_snapshots (user_id, workout_id, data, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id, workout_id) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at;",
            (user_id, workout_id, json.dumps(data), _utc_now()),
        )

    def delete(self, user_id: str, workout_id: int) -> None:
        self.execute(
            "DELETE FROM session_snapshots WHERE user_id = ? AND workout_id = ?;",
            (user_id, workout_id),
        )

    def active_workouts(self, user_id: str) -> list[int]:
        rows = self.fetch_all(
            "SELECT workout_id FROM session_snapshots WHERE user_id = ? ORDER BY updated_at DESC;",
            (user_id,),
        )
        return [int(r[0]) for r in rows]
