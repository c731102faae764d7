"""Tests for the Database catalog."""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path

import pytest

from folderdb.core import Database
from folderdb.entry import Entry
from folderdb.errors import AlreadyExists, InvalidArgument, IOFailure, NotFound
from folderdb.storage.file_manager import FileManager


@pytest.fixture
def db(tmp_path: Path) -> Database:
    return Database.create("db1", tmp_path)


@pytest.fixture
def source(tmp_path: Path) -> Path:
    src = tmp_path / "src" / "x.txt"
    src.parent.mkdir()
    src.write_bytes(b"attachment bytes\n\x00")
    return src


def _dat(db: Database, name: str) -> bytes:
    return (db.path / name / f"{name}.dat").read_bytes()


class TestOpen:
    def test_create(self, db: Database, tmp_path: Path):
        assert db.name == "db1"
        assert db.location == tmp_path
        assert db.path == tmp_path / "db1"
        assert len(db) == 0

    def test_create_twice(self, db: Database, tmp_path: Path):
        with pytest.raises(AlreadyExists):
            Database.create("db1", tmp_path)

    def test_connect_missing(self, tmp_path: Path):
        with pytest.raises(NotFound):
            Database.connect("nope", tmp_path)

    def test_blank_name(self, tmp_path: Path):
        with pytest.raises(InvalidArgument):
            Database.create("  ", tmp_path)

    def test_default_location_is_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        Database.create("here")
        assert Database.connect("here").path.resolve() == (tmp_path / "here").resolve()

    def test_scan(self, db: Database, tmp_path: Path):
        (tmp_path / "unrelated").mkdir()
        assert Database.scan(tmp_path) == ["db1"]
        assert Database.scan(f"  {tmp_path}  ") == ["db1"]


class TestAddGet:
    def test_add_then_get(self, db: Database):
        assert db.add("alpha")
        entry = db.get("alpha")
        assert entry is not None
        assert entry.name == "alpha"
        assert entry.data == []
        assert entry.files == []
        assert (db.path / "alpha" / "alpha.dat").is_file()

    def test_add_twice(self, db: Database):
        assert db.add("alpha")
        assert not db.add(Entry(" alpha "))
        assert db.names() == ["alpha"]

    def test_add_invalid_name(self, db: Database):
        with pytest.raises(InvalidArgument):
            db.add("a/b")
        assert len(db) == 0

    def test_add_prefilled_entry(self, db: Database, source: Path):
        entry = Entry("alpha")
        entry.upload_data("a", "b")
        entry.upload_files(str(source))
        assert db.add(entry)
        assert _dat(db, "alpha") == f"a{os.linesep}b{os.linesep}".encode()
        assert entry.local_files == ["x.txt"]
        assert entry.remote_files == []
        assert (db.path / "alpha" / "x.txt").read_bytes() == source.read_bytes()

    def test_add_with_missing_remote_file(self, db: Database, tmp_path: Path):
        entry = Entry("alpha")
        entry.upload_files(str(tmp_path / "missing.txt"))
        assert db.add(entry)
        assert entry.remote_files == [str(tmp_path / "missing.txt")]

    def test_add_rolls_back_on_write_failure(self, db: Database, monkeypatch):
        def failing_write(self, name, lines):
            raise IOFailure("disk full")

        monkeypatch.setattr(FileManager, "write_data", failing_write)
        assert not db.add("alpha")
        assert "alpha" not in db
        assert not (db.path / "alpha").exists()

    def test_add_with_folder_already_on_disk(self, db: Database):
        (db.path / "alpha").mkdir()
        assert not db.add("alpha")
        assert "alpha" not in db

    def test_add_all(self, db: Database):
        assert db.add_all(["a", "b", "a", Entry("c")]) == 3
        assert db.names() == ["a", "b", "c"]

    def test_get_missing(self, db: Database):
        assert db.get("nope") is None

    def test_contains_trims(self, db: Database):
        db.add("alpha")
        assert db.contains(" alpha ")
        assert "alpha" in db
        assert "Alpha" not in db
        assert 42 not in db


class TestDelete:
    def test_delete(self, db: Database):
        db.add("alpha")
        assert db.delete("alpha")
        assert db.get("alpha") is None
        assert not (db.path / "alpha").exists()

    def test_delete_missing(self, db: Database):
        assert not db.delete("alpha")

    def test_delete_when_folder_vanished(self, db: Database):
        db.add("alpha")
        (db.path / "alpha" / "alpha.dat").unlink()
        (db.path / "alpha").rmdir()
        assert db.delete("alpha")
        assert "alpha" not in db

    def test_deleted_entry_changes_are_refused(self, db: Database):
        db.add("alpha")
        entry = db.get("alpha")
        db.delete("alpha")
        assert not db.apply(entry, entry.upload_data("late"))
        assert not (db.path / "alpha").exists()


class TestRename:
    def test_rename(self, db: Database, source: Path):
        db.add("foo")
        db.upload_data("foo", "a")
        db.upload_files("foo", str(source))
        assert db.rename("foo", "bar")
        assert db.get("foo") is None
        assert db.get("bar").data == ["a"]
        assert (db.path / "bar" / "bar.dat").is_file()
        assert (db.path / "bar" / "x.txt").is_file()
        assert not (db.path / "foo").exists()

    def test_rename_missing(self, db: Database):
        assert not db.rename("foo", "bar")

    def test_rename_onto_taken_name(self, db: Database):
        db.add("foo")
        db.add("bar")
        assert not db.rename("foo", "bar")
        assert db.names() == ["foo", "bar"]

    def test_rename_invalid(self, db: Database):
        db.add("foo")
        with pytest.raises(InvalidArgument):
            db.rename("foo", "  ")

    def test_rename_keeps_name_when_disk_fails(self, db: Database, monkeypatch):
        db.add("foo")

        def failing_rename(self, old, new):
            raise IOFailure("busy")

        monkeypatch.setattr(FileManager, "rename_entry", failing_rename)
        assert not db.rename("foo", "bar")
        assert db.names() == ["foo"]

    def test_renamed_entry_still_persists(self, db: Database):
        db.add("foo")
        db.rename("foo", "bar")
        assert db.upload_data("bar", "after")
        assert _dat(db, "bar") == f"after{os.linesep}".encode()


class TestDataChanges:
    def test_upload_data_persists(self, db: Database):
        db.add("alpha")
        db.upload_data("alpha", "a")
        assert db.upload_data("alpha", "b")
        assert db.get("alpha").data_count == 2
        assert _dat(db, "alpha") == f"a{os.linesep}b{os.linesep}".encode()

    def test_apply_direct_mutation(self, db: Database):
        db.add("alpha")
        entry = db.get("alpha")
        assert db.apply(entry, entry.upload_data("x"))
        assert _dat(db, "alpha") == f"x{os.linesep}".encode()

    def test_apply_no_change(self, db: Database):
        db.add("alpha")
        entry = db.get("alpha")
        log_before = db.audit_log()
        assert not db.apply(entry, entry.remove_data(5))
        assert db.audit_log() == log_before

    def test_apply_foreign_entry(self, db: Database):
        stray = Entry("alpha")
        assert not db.apply(stray, stray.upload_data("x"))

    def test_remove_and_clear(self, db: Database):
        db.add("alpha")
        db.upload_data("alpha", ["a", "b", "c"])
        assert db.remove_data("alpha", 1)
        assert not db.remove_data("alpha", 7)
        assert _dat(db, "alpha") == f"a{os.linesep}c{os.linesep}".encode()
        assert db.clear_data("alpha")
        assert _dat(db, "alpha") == b""

    def test_mutating_missing_entry(self, db: Database):
        assert not db.upload_data("nope", "x")

    def test_undecodable_bytes_round_trip(self, db: Database):
        db.add("alpha")
        db.upload_data("alpha", ["a", "b"])
        assert db.upload_data("alpha", os.fsdecode(b"bad\xff"))
        sep = os.linesep.encode()
        assert _dat(db, "alpha") == b"a" + sep + b"b" + sep + b"bad\xff" + sep

    def test_failed_save_restores_data_from_disk(self, db: Database):
        db.add("alpha")
        db.upload_data("alpha", ["a", "b"])
        assert not db.upload_data("alpha", "\ud800")
        assert db.get("alpha").data == ["a", "b"]
        assert _dat(db, "alpha") == f"a{os.linesep}b{os.linesep}".encode()

    @pytest.mark.parametrize("value", [b"hi", None, 3, ["a", 3]])
    def test_non_text_lines_rejected(self, db: Database, value):
        db.add("alpha")
        db.upload_data("alpha", "a")
        with pytest.raises(InvalidArgument):
            db.upload_data("alpha", value)
        assert db.get("alpha").data == ["a"]
        assert _dat(db, "alpha") == f"a{os.linesep}".encode()


class TestFileChanges:
    def test_remove_local_file_deletes_from_disk(self, db: Database, source: Path):
        db.add("alpha")
        db.upload_files("alpha", str(source))
        assert db.remove_file("alpha", 0)
        assert not (db.path / "alpha" / "x.txt").exists()
        assert db.get("alpha").files == []
        assert db.audit_log()[-1] == "file delete from 'alpha' [x.txt]"

    def test_remove_remote_file(self, db: Database, source: Path, tmp_path: Path):
        db.add("alpha")
        db.upload_files("alpha", str(source))
        db.upload_files("alpha", str(tmp_path / "missing.txt"))
        entry = db.get("alpha")
        assert entry.remote_files == [str(tmp_path / "missing.txt")]
        assert db.remove_file("alpha", 1)
        assert entry.local_files == ["x.txt"]
        assert entry.remote_files == []
        assert (db.path / "alpha" / "x.txt").exists()

    def test_remove_file_out_of_range(self, db: Database, source: Path):
        db.add("alpha")
        db.upload_files("alpha", str(source))
        assert not db.remove_file("alpha", 1)
        assert db.get("alpha").local_files == ["x.txt"]

    def test_clear_files(self, db: Database, source: Path, tmp_path: Path):
        other = tmp_path / "src" / "y.txt"
        other.write_text("y")
        db.add("alpha")
        db.upload_files("alpha", str(source), str(other))
        assert db.clear_files("alpha")
        assert sorted(p.name for p in (db.path / "alpha").iterdir()) == ["alpha.dat"]

    def test_basename_collision_stays_remote(self, db: Database, source: Path, tmp_path: Path):
        other = tmp_path / "other" / "x.txt"
        other.parent.mkdir()
        other.write_text("different")
        db.add("alpha")
        db.upload_files("alpha", str(source))
        assert not db.upload_files("alpha", str(other))
        entry = db.get("alpha")
        assert entry.local_files == ["x.txt"]
        assert entry.remote_files == [str(other)]
        assert (db.path / "alpha" / "x.txt").read_bytes() == source.read_bytes()

    @pytest.mark.skipif(sys.platform != "linux", reason="needs byte-string file names")
    def test_undecodable_file_name(self, db: Database, tmp_path: Path):
        src = tmp_path / os.fsdecode(b"x\xff.txt")
        src.write_bytes(b"data")
        db.add("alpha")
        assert db.upload_files("alpha", src)
        entry = db.get("alpha")
        assert entry.local_files == [src.name]
        assert entry.remote_files == []
        assert (db.path / "alpha" / src.name).read_bytes() == b"data"
        assert db.audit_log()[-1] == f"file added to 'alpha' [{src}]"

    def test_non_path_rejected(self, db: Database):
        db.add("alpha")
        with pytest.raises(InvalidArgument):
            db.upload_files("alpha", None)
        assert db.get("alpha").files == []


class TestPersistence:
    def test_reopen_round_trip(self, db: Database, source: Path, tmp_path: Path):
        db.add("foo")
        db.upload_data("foo", ["a", "b"])
        db.upload_files("foo", str(source))

        reopened = Database.connect("db1", tmp_path)
        foo = reopened.get("foo")
        assert foo.data == ["a", "b"]
        assert foo.local_files == ["x.txt"]
        assert foo.remote_files == []

    def test_reopened_entries_persist_changes(self, db: Database, tmp_path: Path):
        db.add("foo")
        reopened = Database.connect("db1", tmp_path)
        assert reopened.upload_data("foo", "later")
        assert Database.connect("db1", tmp_path).get("foo").data == ["later"]

    def test_connect_with_non_utf8_data(self, db: Database, tmp_path: Path):
        db.add("alpha")
        (db.path / "alpha" / "alpha.dat").write_bytes(b"caf\xe9\n")
        reopened = Database.connect("db1", tmp_path)
        assert reopened.get("alpha").data == ["caf\udce9"]
        assert reopened.upload_data("alpha", "x")
        assert _dat(reopened, "alpha") == b"caf\xe9" + os.linesep.encode() + b"x" + os.linesep.encode()

    def test_connect_skips_unusable_folders(self, db: Database, tmp_path: Path):
        db.add("alpha")
        (db.path / "a:b").mkdir()
        (db.path / " padded ").mkdir()
        assert Database.connect("db1", tmp_path).names() == ["alpha"]

    def test_iteration_and_str(self, db: Database):
        db.add_all(["a", "b"])
        db.upload_data("a", "line")
        assert [e.name for e in db] == ["a", "b"]
        assert str(db) == os.linesep + str(db.get("a")) + os.linesep + str(db.get("b"))


class TestEndToEnd:
    def test_scenario(self, tmp_path: Path, source: Path):
        db = Database.create("db1", tmp_path)
        assert db.add("alpha")
        assert db.upload_data("alpha", "line1")
        assert db.upload_files("alpha", str(source))

        alpha = db.get("alpha")
        assert _dat(db, "alpha") == f"line1{os.linesep}".encode()
        assert (db.path / "alpha" / "x.txt").read_bytes() == source.read_bytes()
        assert alpha.local_files == ["x.txt"]
        assert alpha.remote_files == []
        assert db.audit_log() == [
            "new entry 'alpha'",
            "edit data in 'alpha'",
            "edit data in 'alpha'",
            f"file added to 'alpha' [{source}]",
        ]


class TestConcurrency:
    def test_parallel_uploads(self, db: Database):
        db.add("alpha")

        def worker(n: int) -> None:
            for i in range(20):
                db.upload_data("alpha", f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert db.get("alpha").data_count == 160
        assert sorted(Database.connect("db1", db.location).get("alpha").data) == sorted(
            db.get("alpha").data
        )

    def test_parallel_adds(self, db: Database):
        results: list[bool] = []

        def worker() -> None:
            results.append(db.add("same"))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert db.names() == ["same"]
