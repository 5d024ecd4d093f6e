"""Repository layer responsible for all database access.

Every public method is one atomic store call. Methods are never composed
into a larger transaction here; sequencing multi-step changes is the job of
the service layer.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Sequence
from uuid import uuid4

from backend.domain.constraints import validate_room_capacity
from backend.domain.models import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    Allotment,
    AllotmentIncident,
    AllotmentWindow,
    Hostel,
    Room,
    RoomChangeEntry,
    UserProfile,
)
from backend.utils.clock import from_storage, to_storage, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class StoreError(RuntimeError):
    """Raised when a store call fails at the database level."""


class CapacityGuardError(Exception):
    """Raised when a conditional allotment insert finds the room at capacity."""


@dataclass(frozen=True)
class OccupantRecord:
    """Allotment joined with the occupant's profile."""

    room_id: int
    student_id: str
    name: Optional[str]
    email: str
    branch: Optional[str]
    year: Optional[int]
    allotted_at: datetime


@dataclass(frozen=True)
class AllotmentDetailRecord:
    """Allotment joined with student, room and hostel facts."""

    allotment_id: str
    student_id: str
    student_name: Optional[str]
    email: str
    branch: Optional[str]
    year: Optional[int]
    room_id: int
    room_number: str
    floor: int
    hostel_id: int
    hostel_name: str
    allotted_at: datetime


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=int(row["id"]),
        hostel_id=int(row["hostel_id"]),
        room_number=str(row["room_number"]),
        floor=int(row["floor"]),
        capacity=int(row["capacity"]),
        is_blocked=bool(row["is_blocked"]),
        block_reason=row["block_reason"],
    )


def _row_to_user(row: sqlite3.Row) -> UserProfile:
    return UserProfile(
        user_id=str(row["id"]),
        email=str(row["email"]),
        role=str(row["role"]),
        name=row["name"],
        branch=row["branch"],
        year=int(row["year"]) if row["year"] is not None else None,
    )


def _row_to_allotment(row: sqlite3.Row) -> Allotment:
    return Allotment(
        allotment_id=str(row["id"]),
        student_id=str(row["student_id"]),
        room_id=int(row["room_id"]),
        allotted_at=from_storage(row["allotted_at"]),
    )


def _row_to_window(row: sqlite3.Row) -> AllotmentWindow:
    return AllotmentWindow(
        window_id=int(row["id"]),
        title=str(row["title"]),
        open_at=from_storage(row["open_at"]),
        close_at=from_storage(row["close_at"]),
        created_by=row["created_by"],
    )


def _row_to_change(row: sqlite3.Row) -> RoomChangeEntry:
    return RoomChangeEntry(
        entry_id=int(row["id"]),
        student_id=str(row["student_id"]),
        old_room_id=int(row["old_room_id"]) if row["old_room_id"] is not None else None,
        new_room_id=int(row["new_room_id"]) if row["new_room_id"] is not None else None,
        changed_at=from_storage(row["changed_at"]),
    )


def _row_to_detail(row: sqlite3.Row) -> AllotmentDetailRecord:
    return AllotmentDetailRecord(
        allotment_id=str(row["id"]),
        student_id=str(row["student_id"]),
        student_name=row["student_name"],
        email=str(row["email"] or ""),
        branch=row["branch"],
        year=int(row["year"]) if row["year"] is not None else None,
        room_id=int(row["room_id"]),
        room_number=str(row["room_number"]),
        floor=int(row["floor"]),
        hostel_id=int(row["hostel_id"]),
        hostel_name=str(row["hostel_name"]),
        allotted_at=from_storage(row["allotted_at"]),
    )


def _like_pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and maps sqlite errors."""
        try:
            connection = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"{operation} failed: {exc}") from exc
        try:
            with connection:
                yield connection
        except sqlite3.Error as exc:
            raise StoreError(f"{operation} failed: {exc}") from exc
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        with self._session("Database initialization") as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Hostels (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Rooms (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    hostel_id INTEGER NOT NULL,
                    room_number TEXT NOT NULL,
                    floor INTEGER NOT NULL DEFAULT 0,
                    capacity INTEGER NOT NULL CHECK (capacity > 0),
                    is_blocked INTEGER NOT NULL DEFAULT 0 CHECK (is_blocked IN (0,1)),
                    block_reason TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (hostel_id, room_number),
                    FOREIGN KEY (hostel_id) REFERENCES Hostels(id)
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL DEFAULT 'student' CHECK (role IN ('student','admin')),
                    name TEXT,
                    branch TEXT,
                    year INTEGER,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS Allotments (
                    id TEXT PRIMARY KEY,
                    student_id TEXT NOT NULL UNIQUE,
                    room_id INTEGER NOT NULL,
                    allotted_at TEXT NOT NULL,
                    FOREIGN KEY (student_id) REFERENCES Users(id),
                    FOREIGN KEY (room_id) REFERENCES Rooms(id)
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS AllotmentWindows (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    open_at TEXT NOT NULL,
                    close_at TEXT NOT NULL,
                    created_by TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    CHECK (close_at > open_at)
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS RoomChangeHistory (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT NOT NULL,
                    old_room_id INTEGER,
                    new_room_id INTEGER,
                    changed_at TEXT NOT NULL
                );
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS AllotmentIncidents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT NOT NULL,
                    old_room_id INTEGER,
                    target_room_id INTEGER NOT NULL,
                    detail TEXT NOT NULL,
                    recorded_at TEXT NOT NULL
                );
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_allotments_room
                ON Allotments(room_id);
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_windows_open_close
                ON AllotmentWindows(open_at, close_at);
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_history_student_changed
                ON RoomChangeHistory(student_id, changed_at);
                """
            )
        logger.info("Database initialized at %s", self._db_path)

    def seed_demo_data(self) -> int:
        """Provision one hostel with a grid of rooms when no hostel exists yet."""
        with self._session("Demo data seeding") as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Hostels;")
            if int(cursor.fetchone()["count"]) > 0:
                logger.info("Hostel data already present; skipping seed")
                return 0

            cursor.execute(
                "INSERT INTO Hostels (name) VALUES (?);",
                (self._settings.demo_hostel_name,),
            )
            hostel_id = int(cursor.lastrowid)
            rooms = [
                (
                    hostel_id,
                    f"{floor}{number:02d}",
                    floor,
                    self._settings.demo_room_capacity,
                )
                for floor in range(1, self._settings.demo_floors + 1)
                for number in range(1, self._settings.demo_rooms_per_floor + 1)
            ]
            cursor.executemany(
                """
                INSERT INTO Rooms (hostel_id, room_number, floor, capacity)
                VALUES (?, ?, ?, ?);
                """,
                rooms,
            )
        logger.info("Demo seed completed with %s rooms", len(rooms))
        return len(rooms)

    # --- Hostels & rooms ---

    def create_hostel(self, name: str) -> Hostel:
        with self._session("Hostel creation") as conn:
            cursor = conn.execute("INSERT INTO Hostels (name) VALUES (?);", (name,))
            return Hostel(hostel_id=int(cursor.lastrowid), name=name, total_rooms=0)

    def list_hostels(self) -> list[Hostel]:
        with self._session("Hostel listing") as conn:
            rows = conn.execute(
                """
                SELECT h.id, h.name,
                       (SELECT COUNT(*) FROM Rooms r WHERE r.hostel_id = h.id) AS total_rooms
                FROM Hostels h
                ORDER BY h.name ASC;
                """
            ).fetchall()
        return [
            Hostel(hostel_id=int(row["id"]), name=str(row["name"]), total_rooms=int(row["total_rooms"]))
            for row in rows
        ]

    def get_hostel(self, hostel_id: int) -> Optional[Hostel]:
        with self._session("Hostel fetch") as conn:
            row = conn.execute(
                """
                SELECT h.id, h.name,
                       (SELECT COUNT(*) FROM Rooms r WHERE r.hostel_id = h.id) AS total_rooms
                FROM Hostels h WHERE h.id = ?;
                """,
                (hostel_id,),
            ).fetchone()
        if row is None:
            return None
        return Hostel(hostel_id=int(row["id"]), name=str(row["name"]), total_rooms=int(row["total_rooms"]))

    def create_room(
        self,
        *,
        hostel_id: int,
        room_number: str,
        capacity: int,
        floor: int = 0,
    ) -> Room:
        validate_room_capacity(capacity)
        with self._session("Room creation") as conn:
            cursor = conn.execute(
                """
                INSERT INTO Rooms (hostel_id, room_number, floor, capacity)
                VALUES (?, ?, ?, ?);
                """,
                (hostel_id, room_number, floor, capacity),
            )
            room_id = int(cursor.lastrowid)
        return Room(
            room_id=room_id,
            hostel_id=hostel_id,
            room_number=room_number,
            floor=floor,
            capacity=capacity,
        )

    def get_room(self, room_id: int) -> Optional[Room]:
        with self._session("Room fetch") as conn:
            row = conn.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,)).fetchone()
        return _row_to_room(row) if row is not None else None

    def list_rooms(self, hostel_id: Optional[int] = None) -> list[Room]:
        with self._session("Room listing") as conn:
            if hostel_id is None:
                rows = conn.execute(
                    "SELECT * FROM Rooms ORDER BY floor ASC, room_number ASC;"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM Rooms WHERE hostel_id = ? ORDER BY floor ASC, room_number ASC;",
                    (hostel_id,),
                ).fetchall()
        return [_row_to_room(row) for row in rows]

    def set_room_block(
        self,
        room_id: int,
        *,
        is_blocked: bool,
        reason: Optional[str] = None,
    ) -> Optional[Room]:
        with self._session("Room block update") as conn:
            cursor = conn.execute(
                "UPDATE Rooms SET is_blocked = ?, block_reason = ? WHERE id = ?;",
                (1 if is_blocked else 0, reason if is_blocked else None, room_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,)).fetchone()
        return _row_to_room(row)

    def count_rooms(self, *, blocked: Optional[bool] = None) -> int:
        with self._session("Room count") as conn:
            if blocked is None:
                row = conn.execute("SELECT COUNT(*) AS count FROM Rooms;").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM Rooms WHERE is_blocked = ?;",
                    (1 if blocked else 0,),
                ).fetchone()
        return int(row["count"])

    # --- Users ---

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._session("User fetch") as conn:
            row = conn.execute("SELECT * FROM Users WHERE id = ?;", (user_id,)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        with self._session("User fetch by email") as conn:
            row = conn.execute(
                "SELECT * FROM Users WHERE email = ?;",
                (email.lower(),),
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def upsert_user(self, profile: UserProfile) -> UserProfile:
        """Insert or update a profile by id; parsed fields never overwrite with nulls."""
        with self._session("User upsert") as conn:
            conn.execute(
                """
                INSERT INTO Users (id, email, role, name, branch, year)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    role = excluded.role,
                    name = COALESCE(excluded.name, Users.name),
                    branch = COALESCE(excluded.branch, Users.branch),
                    year = COALESCE(excluded.year, Users.year);
                """,
                (
                    profile.user_id,
                    profile.email.lower(),
                    profile.role,
                    profile.name,
                    profile.branch,
                    profile.year,
                ),
            )
            row = conn.execute("SELECT * FROM Users WHERE id = ?;", (profile.user_id,)).fetchone()
        return _row_to_user(row)

    def ensure_admin_profile(self, *, email: str, name: str) -> UserProfile:
        existing = self.get_user_by_email(email)
        user_id = existing.user_id if existing is not None else uuid4().hex
        return self.upsert_user(
            UserProfile(user_id=user_id, email=email, role=ROLE_ADMIN, name=name, branch="ADMIN")
        )

    def list_students(self, search: Optional[str] = None) -> list[UserProfile]:
        with self._session("Student listing") as conn:
            if search:
                pattern = _like_pattern(search)
                rows = conn.execute(
                    """
                    SELECT * FROM Users
                    WHERE role = ?
                      AND (LOWER(COALESCE(name, '')) LIKE ? ESCAPE '\\'
                           OR LOWER(email) LIKE ? ESCAPE '\\'
                           OR LOWER(COALESCE(branch, '')) LIKE ? ESCAPE '\\')
                    ORDER BY name ASC, email ASC;
                    """,
                    (ROLE_STUDENT, pattern, pattern, pattern),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM Users WHERE role = ? ORDER BY name ASC, email ASC;",
                    (ROLE_STUDENT,),
                ).fetchall()
        return [_row_to_user(row) for row in rows]

    def count_students(self) -> int:
        with self._session("Student count") as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM Users WHERE role = ?;",
                (ROLE_STUDENT,),
            ).fetchone()
        return int(row["count"])

    # --- Allotments ---

    def get_allotment_for_student(self, student_id: str) -> Optional[Allotment]:
        with self._session("Student allotment fetch") as conn:
            row = conn.execute(
                "SELECT * FROM Allotments WHERE student_id = ?;",
                (student_id,),
            ).fetchone()
        return _row_to_allotment(row) if row is not None else None

    def count_allotments_for_room(self, room_id: int) -> int:
        with self._session("Room occupancy count") as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM Allotments WHERE room_id = ?;",
                (room_id,),
            ).fetchone()
        return int(row["count"])

    def count_allotments(self) -> int:
        with self._session("Allotment count") as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM Allotments;").fetchone()
        return int(row["count"])

    def occupancy_by_room(self) -> dict[int, int]:
        with self._session("Occupancy aggregation") as conn:
            rows = conn.execute(
                "SELECT room_id, COUNT(*) AS count FROM Allotments GROUP BY room_id;"
            ).fetchall()
        return {int(row["room_id"]): int(row["count"]) for row in rows}

    def list_occupants(self, room_ids: Optional[Sequence[int]] = None) -> list[OccupantRecord]:
        query = """
            SELECT a.room_id, a.student_id, a.allotted_at,
                   u.name, u.email, u.branch, u.year
            FROM Allotments a
            LEFT JOIN Users u ON u.id = a.student_id
        """
        params: tuple = ()
        if room_ids is not None:
            if not room_ids:
                return []
            placeholders = ", ".join("?" for _ in room_ids)
            query += f" WHERE a.room_id IN ({placeholders})"
            params = tuple(int(room_id) for room_id in room_ids)
        query += " ORDER BY a.allotted_at ASC;"

        with self._session("Occupant listing") as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            OccupantRecord(
                room_id=int(row["room_id"]),
                student_id=str(row["student_id"]),
                name=row["name"],
                email=str(row["email"] or ""),
                branch=row["branch"],
                year=int(row["year"]) if row["year"] is not None else None,
                allotted_at=from_storage(row["allotted_at"]),
            )
            for row in rows
        ]

    _DETAIL_SELECT = """
        SELECT a.id, a.student_id, a.room_id, a.allotted_at,
               u.name AS student_name, u.email, u.branch, u.year,
               r.room_number, r.floor, r.hostel_id, h.name AS hostel_name
        FROM Allotments a
        JOIN Rooms r ON r.id = a.room_id
        JOIN Hostels h ON h.id = r.hostel_id
        LEFT JOIN Users u ON u.id = a.student_id
    """

    def get_allotment_detail(self, allotment_id: str) -> Optional[AllotmentDetailRecord]:
        with self._session("Allotment detail fetch") as conn:
            row = conn.execute(
                self._DETAIL_SELECT + " WHERE a.id = ?;",
                (allotment_id,),
            ).fetchone()
        return _row_to_detail(row) if row is not None else None

    def get_allotment_detail_for_student(self, student_id: str) -> Optional[AllotmentDetailRecord]:
        with self._session("Student allotment detail fetch") as conn:
            row = conn.execute(
                self._DETAIL_SELECT + " WHERE a.student_id = ?;",
                (student_id,),
            ).fetchone()
        return _row_to_detail(row) if row is not None else None

    def list_allotment_details(self) -> list[AllotmentDetailRecord]:
        with self._session("Allotment detail listing") as conn:
            rows = conn.execute(
                self._DETAIL_SELECT + " ORDER BY a.allotted_at DESC;"
            ).fetchall()
        return [_row_to_detail(row) for row in rows]

    def delete_allotment_for_student(self, student_id: str) -> int:
        with self._session("Allotment delete") as conn:
            cursor = conn.execute(
                "DELETE FROM Allotments WHERE student_id = ?;",
                (student_id,),
            )
            return int(cursor.rowcount)

    def insert_allotment(
        self,
        *,
        student_id: str,
        room_id: int,
        allotted_at: Optional[datetime] = None,
    ) -> Allotment:
        """Insert an allotment only while the room is below capacity.

        The occupancy count and the insert run in one statement, so two
        concurrent inserts cannot both take the last free place.
        """
        allotment = Allotment(
            allotment_id=uuid4().hex,
            student_id=student_id,
            room_id=room_id,
            allotted_at=allotted_at or utc_now(),
        )
        with self._session("Allotment insert") as conn:
            cursor = conn.execute(
                """
                INSERT INTO Allotments (id, student_id, room_id, allotted_at)
                SELECT ?, ?, r.id, ?
                FROM Rooms r
                WHERE r.id = ?
                  AND (SELECT COUNT(*) FROM Allotments a WHERE a.room_id = r.id) < r.capacity;
                """,
                (
                    allotment.allotment_id,
                    student_id,
                    to_storage(allotment.allotted_at),
                    room_id,
                ),
            )
            inserted = cursor.rowcount
        if inserted == 0:
            raise CapacityGuardError(f"Room {room_id} has no free capacity")
        return allotment

    def restore_allotment(self, allotment: Allotment) -> Allotment:
        """Re-insert a previously deleted allotment row unconditionally."""
        with self._session("Allotment restore") as conn:
            conn.execute(
                """
                INSERT INTO Allotments (id, student_id, room_id, allotted_at)
                VALUES (?, ?, ?, ?);
                """,
                (
                    allotment.allotment_id,
                    allotment.student_id,
                    allotment.room_id,
                    to_storage(allotment.allotted_at),
                ),
            )
        return allotment

    # --- Allotment windows ---

    def create_window(
        self,
        *,
        title: str,
        open_at: datetime,
        close_at: datetime,
        created_by: Optional[str],
    ) -> AllotmentWindow:
        with self._session("Allotment window creation") as conn:
            cursor = conn.execute(
                """
                INSERT INTO AllotmentWindows (title, open_at, close_at, created_by)
                VALUES (?, ?, ?, ?);
                """,
                (title, to_storage(open_at), to_storage(close_at), created_by),
            )
            row = conn.execute(
                "SELECT * FROM AllotmentWindows WHERE id = ?;",
                (int(cursor.lastrowid),),
            ).fetchone()
        return _row_to_window(row)

    def find_active_window(self, moment: datetime) -> Optional[AllotmentWindow]:
        """Latest-opened window containing ``moment``; ties go to the newest row."""
        stamp = to_storage(moment)
        with self._session("Active window lookup") as conn:
            row = conn.execute(
                """
                SELECT * FROM AllotmentWindows
                WHERE open_at <= ? AND close_at >= ?
                ORDER BY open_at DESC, id DESC
                LIMIT 1;
                """,
                (stamp, stamp),
            ).fetchone()
        return _row_to_window(row) if row is not None else None

    def list_windows(self, limit: int) -> list[AllotmentWindow]:
        with self._session("Allotment window listing") as conn:
            rows = conn.execute(
                "SELECT * FROM AllotmentWindows ORDER BY open_at DESC, id DESC LIMIT ?;",
                (limit,),
            ).fetchall()
        return [_row_to_window(row) for row in rows]

    # --- History & incidents ---

    def append_room_change(
        self,
        *,
        student_id: str,
        old_room_id: Optional[int],
        new_room_id: Optional[int],
    ) -> RoomChangeEntry:
        changed_at = utc_now()
        with self._session("Room change history append") as conn:
            cursor = conn.execute(
                """
                INSERT INTO RoomChangeHistory (student_id, old_room_id, new_room_id, changed_at)
                VALUES (?, ?, ?, ?);
                """,
                (student_id, old_room_id, new_room_id, to_storage(changed_at)),
            )
            entry_id = int(cursor.lastrowid)
        return RoomChangeEntry(
            entry_id=entry_id,
            student_id=student_id,
            old_room_id=old_room_id,
            new_room_id=new_room_id,
            changed_at=changed_at,
        )

    def list_room_changes(self, student_id: str, limit: Optional[int] = None) -> list[RoomChangeEntry]:
        query = "SELECT * FROM RoomChangeHistory WHERE student_id = ? ORDER BY changed_at DESC, id DESC"
        params: tuple = (student_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (student_id, limit)
        with self._session("Room change history listing") as conn:
            rows = conn.execute(query + ";", params).fetchall()
        return [_row_to_change(row) for row in rows]

    def record_incident(
        self,
        *,
        student_id: str,
        old_room_id: Optional[int],
        target_room_id: int,
        detail: str,
    ) -> AllotmentIncident:
        recorded_at = utc_now()
        with self._session("Allotment incident record") as conn:
            cursor = conn.execute(
                """
                INSERT INTO AllotmentIncidents
                    (student_id, old_room_id, target_room_id, detail, recorded_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (student_id, old_room_id, target_room_id, detail, to_storage(recorded_at)),
            )
            incident_id = int(cursor.lastrowid)
        return AllotmentIncident(
            incident_id=incident_id,
            student_id=student_id,
            old_room_id=old_room_id,
            target_room_id=target_room_id,
            detail=detail,
            recorded_at=recorded_at,
        )

    def list_incidents(self) -> list[AllotmentIncident]:
        with self._session("Allotment incident listing") as conn:
            rows = conn.execute(
                "SELECT * FROM AllotmentIncidents ORDER BY recorded_at DESC, id DESC;"
            ).fetchall()
        return [
            AllotmentIncident(
                incident_id=int(row["id"]),
                student_id=str(row["student_id"]),
                old_room_id=int(row["old_room_id"]) if row["old_room_id"] is not None else None,
                target_room_id=int(row["target_room_id"]),
                detail=str(row["detail"]),
                recorded_at=from_storage(row["recorded_at"]),
            )
            for row in rows
        ]
