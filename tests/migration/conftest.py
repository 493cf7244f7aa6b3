from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

import pytest
from sqlalchemy import create_engine, text

from library_app.migration.pipeline import MigrationContext, MigrationSettings, RunLog, SubjectCache
from library_app.migration.source import LegacySource
from library_app.models import MigrationRun, MigrationRunStatus, db

# SQLite rendition of the OpenBiblio tables the migration reads.
LEGACY_DDL = (
    """
    CREATE TABLE staff (
        userid INTEGER PRIMARY KEY,
        username TEXT,
        first_name TEXT,
        last_name TEXT,
        suspended_flg TEXT DEFAULT 'N'
    )
    """,
    """
    CREATE TABLE member (
        mbrid INTEGER PRIMARY KEY,
        barcode_nmbr TEXT,
        first_name TEXT,
        last_name TEXT,
        email TEXT,
        home_phone TEXT,
        work_phone TEXT,
        cel TEXT,
        address TEXT,
        is_active TEXT DEFAULT 'Y'
    )
    """,
    """
    CREATE TABLE cdd (
        cdd_Bid INTEGER PRIMARY KEY,
        cdd_Numero TEXT,
        cdd_Descripcion TEXT
    )
    """,
    """
    CREATE TABLE collection_dm (
        code INTEGER PRIMARY KEY,
        description TEXT,
        days_due_back INTEGER
    )
    """,
    """
    CREATE TABLE material_type_dm (
        code INTEGER PRIMARY KEY,
        description TEXT
    )
    """,
    """
    CREATE TABLE biblio (
        bibid INTEGER PRIMARY KEY,
        create_dt TEXT,
        material_cd INTEGER,
        collection_cd INTEGER,
        call_nmbr1 TEXT,
        call_nmbr2 TEXT,
        call_nmbr3 TEXT,
        title TEXT,
        title_remainder TEXT,
        responsibility_stmt TEXT,
        author TEXT,
        topic1 TEXT,
        topic2 TEXT,
        topic3 TEXT,
        topic4 TEXT,
        topic5 TEXT,
        opac_flg TEXT DEFAULT 'Y'
    )
    """,
    """
    CREATE TABLE biblio_field (
        bibid INTEGER NOT NULL,
        fieldid INTEGER NOT NULL,
        tag TEXT NOT NULL,
        subfield_cd TEXT NOT NULL,
        field_data TEXT,
        PRIMARY KEY (bibid, fieldid)
    )
    """,
    """
    CREATE TABLE biblio_copy (
        bibid INTEGER NOT NULL,
        copyid INTEGER NOT NULL,
        create_dt TEXT,
        copy_desc TEXT,
        barcode_nmbr TEXT,
        status_cd TEXT,
        status_begin_dt TEXT,
        due_back_dt TEXT,
        mbrid INTEGER,
        renewal_count INTEGER DEFAULT 0,
        PRIMARY KEY (bibid, copyid)
    )
    """,
    """
    CREATE TABLE biblio_status_hist (
        bibid INTEGER NOT NULL,
        copyid INTEGER NOT NULL,
        status_cd TEXT,
        status_begin_dt TEXT,
        due_back_dt TEXT,
        mbrid INTEGER,
        renewal_count INTEGER DEFAULT 0
    )
    """,
    """
    CREATE TABLE settings (
        library_name TEXT,
        library_hours TEXT,
        library_aders TEXT,
        library_phone TEXT,
        library_url TEXT,
        opac_url TEXT
    )
    """,
)


def _stamp(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value


class LegacyDatabase:
    """Writable handle on a throwaway legacy database file."""

    def __init__(self, path):
        self.path = path
        self.url = f"sqlite:///{path}"
        self.engine = create_engine(self.url)
        with self.engine.begin() as conn:
            for statement in LEGACY_DDL:
                conn.execute(text(statement))
        self._fieldids: dict[int, int] = {}

    def dispose(self) -> None:
        self.engine.dispose()

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(sql), params or {})

    def scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        with self.engine.connect() as conn:
            return conn.execute(text(sql), params or {}).scalar()

    def insert(self, table: str, **values: Any) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)
        self.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            {name: _stamp(value) for name, value in values.items()},
        )

    def add_staff(self, userid: int, username: str, **values: Any) -> None:
        self.insert("staff", userid=userid, username=username, **values)

    def add_member(self, mbrid: int, **values: Any) -> None:
        values.setdefault("first_name", f"Member{mbrid}")
        values.setdefault("last_name", "Reader")
        self.insert("member", mbrid=mbrid, **values)

    def add_cdd(self, cdd_id: int, number: str | None, description: str | None) -> None:
        self.insert("cdd", cdd_Bid=cdd_id, cdd_Numero=number, cdd_Descripcion=description)

    def add_collection(self, code: int, description: str, days_due_back: int | None = 14) -> None:
        self.insert("collection_dm", code=code, description=description, days_due_back=days_due_back)

    def add_material_type(self, code: int, description: str) -> None:
        self.insert("material_type_dm", code=code, description=description)

    def add_field(self, bibid: int, tag: str, subfield: str, value: str | None) -> None:
        fieldid = self._fieldids.get(bibid, 0) + 1
        self._fieldids[bibid] = fieldid
        self.insert(
            "biblio_field",
            bibid=bibid,
            fieldid=fieldid,
            tag=tag,
            subfield_cd=subfield,
            field_data=value,
        )

    def add_biblio(
        self,
        bibid: int,
        title: str | None = None,
        *,
        fields: Iterable[tuple[str, str, str | None]] = (),
        **values: Any,
    ) -> None:
        values.setdefault("create_dt", "2020-01-15 09:30:00")
        self.insert("biblio", bibid=bibid, title=title, **values)
        for tag, subfield, value in fields:
            self.add_field(bibid, tag, subfield, value)

    def add_copy(self, bibid: int, copyid: int, status_cd: str = "IN", **values: Any) -> None:
        values.setdefault("barcode_nmbr", f"BC{bibid:04d}{copyid:02d}")
        values.setdefault("status_begin_dt", "2021-03-01 10:00:00")
        self.insert("biblio_copy", bibid=bibid, copyid=copyid, status_cd=status_cd, **values)

    def add_history(self, bibid: int, copyid: int, status_cd: str, status_begin_dt: Any, **values: Any) -> None:
        self.insert(
            "biblio_status_hist",
            bibid=bibid,
            copyid=copyid,
            status_cd=status_cd,
            status_begin_dt=status_begin_dt,
            **values,
        )

    def set_settings(self, **values: Any) -> None:
        self.execute("DELETE FROM settings")
        self.insert("settings", **values)

    def seed_catalog(self) -> None:
        """A small, internally consistent catalogue used by the end-to-end tests."""

        self.add_staff(1, "admin", first_name="Ada", last_name="Admin")
        self.add_staff(2, "clerk", first_name="Carl", last_name="Clerk", suspended_flg="Y")
        self.add_member(10, email="Reader@biblioteca.org",barcode_nmbr="M-10", cel="555-0100")
        self.add_member(11, email="not-an-email", barcode_nmbr="M-11", home_phone="555-0111")
        self.add_cdd(1, "800", "Literature")
        self.add_cdd(2, "820", "English literature")
        self.add_cdd(3, "000", None)
        self.add_collection(1, "Adult Fiction", 21)
        self.add_collection(2, "Reference", None)
        self.add_material_type(1, "Book")
        self.add_material_type(2, "Video")
        self.add_biblio(
            1,
            "Fallback title",
            material_cd=1,
            collection_cd=1,
            call_nmbr1="823.914",
            call_nmbr2="ORW",
            topic1="Dystopias",
            fields=[
                ("20", "a", "978-0451524935"),
                ("245", "a", "Nineteen Eighty-Four"),
                ("245", "b", "a novel"),
                ("100", "a", "Orwell, George"),
                ("082", "a", "823.912"),
                ("260", "b", "Secker & Warburg"),
                ("300", "a", "xii, 328 p."),
                ("365", "b", "12,50"),
                ("650", "a", "  Totalitarianism "),
                ("650", "a", "Dystopias"),
            ],
        )
        self.add_biblio(
            2,
            "A Short History",
            material_cd=1,
            collection_cd=2,
            author="Historian, Hal",
            responsibility_stmt="edited by H. Historian",
            fields=[("650", "a", "History"), ("650", "a", "Totalitarianism")],
        )
        self.add_biblio(3, None, material_cd=2, collection_cd=9)
        self.add_copy(1, 1, "IN")
        self.add_copy(1, 2, "CRT", due_back_dt="2099-01-01 00:00:00", mbrid=10)
        self.add_copy(2, 1, "DAM")
        self.add_copy(3, 1, "LST")
        self.add_history(1, 2, "OUT", "2021-05-01 10:00:00", due_back_dt="2021-05-15 00:00:00", mbrid=10)
        self.add_history(1, 2, "IN", "2021-05-14 10:00:00")
        self.add_history(1, 1, "OUT", "2022-02-01 10:00:00", mbrid=999, renewal_count=2)
        self.set_settings(
            library_name="Biblioteca Municipal",
            library_hours="Mon-Fri 9-17",
            library_aders="Main Street 1",
            library_phone="555-0000",
            library_url="https://library.example.org",
        )


@pytest.fixture
def legacy_db(tmp_path):
    database = LegacyDatabase(tmp_path / "legacy.db")
    yield database
    database.dispose()


@pytest.fixture
def migration_settings(legacy_db, tmp_path):
    return MigrationSettings(
        source_url=legacy_db.url,
        batch_size=2,
        default_password="not-the-default",
        connect_timeout=5,
        progress_interval=1,
        sample_size=5,
        log_path=str(tmp_path / "logs" / "migration.log"),
    )


@pytest.fixture
def legacy_source(legacy_db):
    source = LegacySource(legacy_db.url, connect_timeout=5)
    source.open()
    yield source
    source.close()


@pytest.fixture
def migration_context(legacy_source, migration_settings):
    """Context bound to a fresh run record, for driving stages directly."""

    run = MigrationRun(source="legacy", status=MigrationRunStatus.RUNNING)
    db.session.add(run)
    db.session.commit()
    with RunLog(migration_settings.log_path, session=db.session, run=run) as run_log:
        yield MigrationContext(
            session=db.session,
            source=legacy_source,
            run_log=run_log,
            settings=migration_settings,
            subject_cache=SubjectCache(),
            run=run,
        )
