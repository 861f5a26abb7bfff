"""Unit tests for the step adapters."""

from __future__ import annotations

import io
import stat
import tarfile
from pathlib import Path

import pytest

from vaultline.adapters import default_adapters
from vaultline.adapters.base import AdapterContext, require_single_input, single_entry
from vaultline.adapters.compression import CompressionAdapter, DecompressionAdapter
from vaultline.adapters.encryption import (
    DecryptionAdapter,
    EncryptionAdapter,
    decrypt_bytes,
    encrypt_bytes,
)
from vaultline.adapters.filesystem import FilesystemReadAdapter, FilesystemWriteAdapter
from vaultline.adapters.folder import FilterAdapter, FolderFlattenAdapter, FolderGroupAdapter
from vaultline.adapters.postgres import PostgresBackupAdapter, build_dbname
from vaultline.adapters.script import CustomScriptAdapter
from vaultline.adapters.upload import ObjectStorageUploadAdapter
from vaultline.config import VaultlineConfig
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.infra.command import CommandRunner
from vaultline.pipeline.definition import (
    CompressionStep,
    CustomScriptStep,
    DecompressionStep,
    DecryptionStep,
    EncryptionStep,
    FilesystemReadStep,
    FilesystemWriteStep,
    FilterStep,
    FolderFlattenStep,
    FolderGroupStep,
    ObjectStorageUploadStep,
    PostgresBackupStep,
    StepType,
)
from vaultline.storage.memory import InMemoryObjectStorage

PG_URL = "postgresql://backup@db.internal:5432"


@pytest.fixture
def ctx(config: VaultlineConfig, storage: InMemoryObjectStorage) -> AdapterContext:
    """Adapter context with an isolated environment."""
    return AdapterContext(
        execution_id="exec-1",
        pipeline_id="nightly",
        storage=storage,
        tmp_root=config.tmp_root,
        command_runner=CommandRunner(heartbeat_interval=0),
        env={"PG_URL": PG_URL, "BACKUP_KEY": "correct horse battery staple"},
    )


@pytest.fixture
def new_dir(tmp_path: Path):
    """Factory for fresh, empty directories."""
    counter = iter(range(1000))

    def _make(name: str = "out") -> Path:
        path = tmp_path / f"{name}-{next(counter)}"
        path.mkdir()
        return path

    return _make


def _script(tmp_path: Path, name: str, body: str) -> Path:
    script = tmp_path / "scripts" / name
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


def _sample_tree(root: Path) -> Path:
    tree = root / "site"
    (tree / "nested").mkdir(parents=True)
    (tree / "index.html").write_text("<h1>hi</h1>")
    (tree / "nested" / "data.bin").write_bytes(b"\x00" * 64)
    return tree


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    """Tests for shared adapter helpers."""

    def test_require_single_input(self, tmp_path: Path) -> None:
        """Test artifact_count_invalid for zero or several inputs."""
        step = CompressionStep(id="zip")

        assert require_single_input(step, [tmp_path]) == tmp_path
        for inputs in ([], [tmp_path, tmp_path]):
            with pytest.raises(ExecutionError) as exc_info:
                require_single_input(step, inputs)
            assert exc_info.value.kind == ExecutionErrorKind.ARTIFACT_COUNT_INVALID

    def test_single_entry(self, new_dir) -> None:
        """Test the exactly-one-entry rule for output directories."""
        directory = new_dir()

        with pytest.raises(ExecutionError) as exc_info:
            single_entry(directory)
        assert exc_info.value.kind == ExecutionErrorKind.FSDIR_CHILDREN_COUNT_INVALID

        (directory / "only").write_text("x")
        assert single_entry(directory).name == "only"

        with pytest.raises(ExecutionError) as exc_info:
            single_entry(directory / "missing")
        assert exc_info.value.kind == ExecutionErrorKind.FSPATH_DOES_NOT_EXIST

    def test_default_adapters_cover_every_type(self) -> None:
        """Test that each step type has an adapter."""
        assert set(default_adapters()) == set(StepType)


# ============================================================================
# Filesystem
# ============================================================================


class TestFilesystemAdapters:
    """Tests for filesystem read and write."""

    @pytest.mark.asyncio
    async def test_read_file(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test copying a single file."""
        source = tmp_path / "report.csv"
        source.write_text("a,b\n")
        out = new_dir()

        result = await FilesystemReadAdapter().run(
            FilesystemReadStep(id="read", path=str(source)), [], out, ctx
        )

        assert (out / "report.csv").read_text() == "a,b\n"
        assert result.runtime == {"kind": "file", "size_bytes": 4}

    @pytest.mark.asyncio
    async def test_read_directory(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test copying a directory tree as one entry."""
        tree = _sample_tree(tmp_path)
        out = new_dir()

        result = await FilesystemReadAdapter().run(
            FilesystemReadStep(id="read", path=str(tree)), [], out, ctx
        )

        assert single_entry(out).name == "site"
        assert (out / "site" / "nested" / "data.bin").exists()
        assert result.runtime == {"kind": "directory", "size_bytes": 75}

    @pytest.mark.asyncio
    async def test_read_missing(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test fspath_does_not_exist."""
        with pytest.raises(ExecutionError) as exc_info:
            await FilesystemReadAdapter().run(
                FilesystemReadStep(id="read", path=str(tmp_path / "ghost")),
                [],
                new_dir(),
                ctx,
            )

        assert exc_info.value.kind == ExecutionErrorKind.FSPATH_DOES_NOT_EXIST

    @pytest.mark.asyncio
    async def test_write_replaces_existing(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that the sink overwrites and leaves a receipt."""
        source_dir = new_dir("in")
        (source_dir / "app.dump").write_text("new")
        folder = tmp_path / "archive"
        folder.mkdir()
        (folder / "app.dump").write_text("old")
        out = new_dir()

        result = await FilesystemWriteAdapter().run(
            FilesystemWriteStep(id="keep", folder=str(folder)),
            [source_dir / "app.dump"],
            out,
            ctx,
        )

        assert (folder / "app.dump").read_text() == "new"
        assert result.remote_path == str(folder / "app.dump")
        assert single_entry(out).name == "receipt.json"


# ============================================================================
# Compression
# ============================================================================


class TestCompressionAdapters:
    """Tests for tar.gz compression and decompression."""

    @pytest.mark.asyncio
    async def test_compress_then_decompress_directory(
        self, ctx, new_dir, tmp_path: Path
    ) -> None:
        """Test that a directory survives a compress/decompress pair."""
        tree = _sample_tree(tmp_path)
        packed = new_dir()
        unpacked = new_dir()

        result = await CompressionAdapter().run(
            CompressionStep(id="zip", level=9), [tree], packed, ctx
        )
        archive = single_entry(packed)
        await DecompressionAdapter().run(
            DecompressionStep(id="unzip"), [archive], unpacked, ctx
        )

        assert archive.name == "site.tar.gz"
        assert result.runtime is not None
        assert result.runtime["level"] == 9
        assert (unpacked / "site" / "index.html").read_text() == "<h1>hi</h1>"
        assert list(ctx.tmp_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_decompress_multiple_entries(self, ctx, new_dir) -> None:
        """Test that an archive with two top-level entries is ambiguous."""
        source = new_dir("in")
        archive = source / "two.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            for name in ("a.txt", "b.txt"):
                info = tarfile.TarInfo(name)
                info.size = 1
                tar.addfile(info, io.BytesIO(b"x"))

        with pytest.raises(ExecutionError) as exc_info:
            await DecompressionAdapter().run(
                DecompressionStep(id="unzip"), [archive], new_dir(), ctx
            )

        assert exc_info.value.kind == ExecutionErrorKind.FSDIR_CHILDREN_COUNT_INVALID

    @pytest.mark.asyncio
    async def test_decompress_not_an_archive(self, ctx, new_dir) -> None:
        """Test decompression_failed for garbage input."""
        source = new_dir("in")
        (source / "junk.tar.gz").write_bytes(b"not a tarball")

        with pytest.raises(ExecutionError) as exc_info:
            await DecompressionAdapter().run(
                DecompressionStep(id="unzip"), [source / "junk.tar.gz"], new_dir(), ctx
            )

        assert exc_info.value.kind == ExecutionErrorKind.DECOMPRESSION_FAILED

    @pytest.mark.asyncio
    async def test_decompress_directory(self, ctx, new_dir) -> None:
        """Test that a directory input is rejected."""
        with pytest.raises(ExecutionError) as exc_info:
            await DecompressionAdapter().run(
                DecompressionStep(id="unzip"), [new_dir("in")], new_dir(), ctx
            )

        assert exc_info.value.kind == ExecutionErrorKind.DECOMPRESSION_FAILED


# ============================================================================
# Encryption
# ============================================================================


class TestEncryptionAdapters:
    """Tests for encryption and decryption."""

    def test_payload_is_salted(self) -> None:
        """Test that equal input gives different payloads that both decrypt."""
        first = encrypt_bytes("k", b"data")
        second = encrypt_bytes("k", b"data")

        assert first != second
        assert decrypt_bytes("k", first) == decrypt_bytes("k", second) == b"data"

    @pytest.mark.asyncio
    async def test_encrypt_then_decrypt(self, ctx, new_dir) -> None:
        """Test that a file survives an encrypt/decrypt pair."""
        source = new_dir("in")
        (source / "app.dump").write_bytes(b"PGDMP secret rows")
        sealed = new_dir()
        opened = new_dir()

        await EncryptionAdapter().run(
            EncryptionStep(id="seal", key_reference="BACKUP_KEY"),
            [source / "app.dump"],
            sealed,
            ctx,
        )
        encrypted = single_entry(sealed)
        await DecryptionAdapter().run(
            DecryptionStep(id="open", key_reference="BACKUP_KEY"), [encrypted], opened, ctx
        )

        assert encrypted.name == "app.dump.enc"
        assert b"secret" not in encrypted.read_bytes()
        assert (opened / "app.dump").read_bytes() == b"PGDMP secret rows"

    @pytest.mark.asyncio
    async def test_decrypt_with_wrong_key(self, ctx, new_dir) -> None:
        """Test decryption_failed when the key does not match."""
        source = new_dir("in")
        (source / "x.enc").write_bytes(encrypt_bytes("another key", b"data"))

        with pytest.raises(ExecutionError) as exc_info:
            await DecryptionAdapter().run(
                DecryptionStep(id="open", key_reference="BACKUP_KEY"),
                [source / "x.enc"],
                new_dir(),
                ctx,
            )

        assert exc_info.value.kind == ExecutionErrorKind.DECRYPTION_FAILED

    @pytest.mark.asyncio
    async def test_missing_key(self, ctx, new_dir) -> None:
        """Test environment_variable_missing for an unset key reference."""
        source = new_dir("in")
        (source / "x").write_bytes(b"data")

        with pytest.raises(ExecutionError) as exc_info:
            await EncryptionAdapter().run(
                EncryptionStep(id="seal", key_reference="NO_SUCH_KEY"),
                [source / "x"],
                new_dir(),
                ctx,
            )

        assert exc_info.value.kind == ExecutionErrorKind.ENVIRONMENT_VARIABLE_MISSING
        assert exc_info.value.details == {"name": "NO_SUCH_KEY"}

    @pytest.mark.asyncio
    async def test_encrypt_directory(self, ctx, new_dir) -> None:
        """Test that directories must be compressed before encryption."""
        with pytest.raises(ExecutionError) as exc_info:
            await EncryptionAdapter().run(
                EncryptionStep(id="seal", key_reference="BACKUP_KEY"),
                [new_dir("in")],
                new_dir(),
                ctx,
            )

        assert exc_info.value.kind == ExecutionErrorKind.ENCRYPTION_FAILED


# ============================================================================
# Upload
# ============================================================================


class TestObjectStorageUploadAdapter:
    """Tests for the upload sink."""

    @pytest.mark.asyncio
    async def test_upload_file(self, ctx, new_dir, storage) -> None:
        """Test that a file lands under base_folder/<output_id>/."""
        source = new_dir("in")
        (source / "app.tar.gz").write_bytes(b"archive")
        out = new_dir()

        result = await ObjectStorageUploadAdapter().run(
            ObjectStorageUploadStep(id="ship", base_folder="/backups/"),
            [source / "app.tar.gz"],
            out,
            ctx,
        )

        assert result.remote_path is not None
        assert result.remote_path.startswith("backups/")
        assert result.remote_path.endswith("/app.tar.gz")
        assert storage.get(result.remote_path) == b"archive"
        assert result.runtime == {"object_count": 1}
        assert single_entry(out).name == "receipt.json"

    @pytest.mark.asyncio
    async def test_upload_directory(self, ctx, new_dir, storage, tmp_path: Path) -> None:
        """Test that a directory is uploaded file by file."""
        tree = _sample_tree(tmp_path)

        result = await ObjectStorageUploadAdapter().run(
            ObjectStorageUploadStep(id="ship", base_folder="sites"), [tree], new_dir(), ctx
        )

        assert result.remote_path is not None
        assert storage.list(result.remote_path + "/") == [
            f"{result.remote_path}/index.html",
            f"{result.remote_path}/nested/data.bin",
        ]


# ============================================================================
# Postgres
# ============================================================================


class TestPostgresBackupAdapter:
    """Tests for the pg_dump source, using stand-in executables."""

    def test_build_dbname(self) -> None:
        """Test that the database is appended to the server URL."""
        assert build_dbname(PG_URL + "/", "app") == f"{PG_URL}/app"

    @pytest.mark.asyncio
    async def test_dump(self, ctx, new_dir, fake_pg_dump: Path) -> None:
        """Test a successful dump."""
        out = new_dir()
        step = PostgresBackupStep(
            id="dump", connection_reference="PG_URL", database="app", binary=str(fake_pg_dump)
        )

        result = await PostgresBackupAdapter().run(step, [], out, ctx)

        assert (out / "app.dump").read_text() == "PGDMP fake dump\n"
        assert result.runtime is not None
        assert result.runtime["database"] == "app"
        assert result.runtime["size_bytes"] == 16

    @pytest.mark.asyncio
    async def test_arguments(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test the pg_dump command line."""
        args_file = tmp_path / "args.txt"
        binary = _script(
            tmp_path,
            "pg_dump_args",
            f'printf "%s\\n" "$@" > {args_file}\n'
            'for a in "$@"; do case "$a" in --file=*) : > "${a#--file=}" ;; esac; done\n',
        )
        out = new_dir()
        step = PostgresBackupStep(
            id="dump", connection_reference="PG_URL", database="app", binary=str(binary)
        )

        await PostgresBackupAdapter().run(step, [], out, ctx)

        assert args_file.read_text().splitlines() == [
            "--format=custom",
            "--no-password",
            f"--file={out / 'app.dump'}",
            f"--dbname={PG_URL}/app",
        ]

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that a failing dump reports its exit code and stderr."""
        binary = _script(tmp_path, "pg_dump_fail", "echo 'connection refused' >&2\nexit 1\n")
        step = PostgresBackupStep(
            id="dump", connection_reference="PG_URL", database="app", binary=str(binary)
        )

        with pytest.raises(ExecutionError) as exc_info:
            await PostgresBackupAdapter().run(step, [], new_dir(), ctx)

        error = exc_info.value
        assert error.kind == ExecutionErrorKind.NONZERO_SCRIPT_EXIT
        assert error.details["returncode"] == 1
        assert "connection refused" in error.details["stderr"]

    @pytest.mark.asyncio
    async def test_no_dump_file(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that exiting cleanly without a dump is still a failure."""
        binary = _script(tmp_path, "pg_dump_noop", "exit 0\n")
        step = PostgresBackupStep(
            id="dump", connection_reference="PG_URL", database="app", binary=str(binary)
        )

        with pytest.raises(ExecutionError) as exc_info:
            await PostgresBackupAdapter().run(step, [], new_dir(), ctx)

        assert exc_info.value.kind == ExecutionErrorKind.POSTGRES_BACKUP_FAILED

    @pytest.mark.asyncio
    async def test_binary_not_found(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that a missing pg_dump is postgres_backup_failed."""
        step = PostgresBackupStep(
            id="dump",
            connection_reference="PG_URL",
            database="app",
            binary=str(tmp_path / "nowhere" / "pg_dump"),
        )

        with pytest.raises(ExecutionError) as exc_info:
            await PostgresBackupAdapter().run(step, [], new_dir(), ctx)

        assert exc_info.value.kind == ExecutionErrorKind.POSTGRES_BACKUP_FAILED

    @pytest.mark.asyncio
    async def test_missing_connection(self, ctx, new_dir) -> None:
        """Test environment_variable_missing for the connection reference."""
        step = PostgresBackupStep(id="dump", connection_reference="NOPE", database="app")

        with pytest.raises(ExecutionError) as exc_info:
            await PostgresBackupAdapter().run(step, [], new_dir(), ctx)

        assert exc_info.value.kind == ExecutionErrorKind.ENVIRONMENT_VARIABLE_MISSING


# ============================================================================
# Folder and filter
# ============================================================================


class TestFolderAdapters:
    """Tests for folder flatten, folder group and filter."""

    @pytest.mark.asyncio
    async def test_flatten(self, ctx, new_dir) -> None:
        """Test that nested files end up side by side."""
        tree = _sample_tree(new_dir("in"))
        out = new_dir()

        result = await FolderFlattenAdapter().run(FolderFlattenStep(id="flat"), [tree], out, ctx)

        assert sorted(p.name for p in (out / "site").iterdir()) == ["data.bin", "index.html"]
        assert (out / "site" / "data.bin").read_bytes() == b"\x00" * 64
        assert result.runtime == {"file_count": 2}

    @pytest.mark.asyncio
    async def test_flatten_name_conflict(self, ctx, new_dir) -> None:
        """Test that two files of the same name cannot be flattened."""
        tree = new_dir("in") / "logs"
        for sub in ("a", "b"):
            (tree / sub).mkdir(parents=True)
            (tree / sub / "app.log").write_text(sub)

        with pytest.raises(ExecutionError) as exc_info:
            await FolderFlattenAdapter().run(FolderFlattenStep(id="flat"), [tree], new_dir(), ctx)

        assert exc_info.value.kind == ExecutionErrorKind.ARTIFACT_NAME_CONFLICT
        assert exc_info.value.details == {"step_id": "flat", "name": "app.log"}

    @pytest.mark.asyncio
    async def test_flatten_file_input(self, ctx, new_dir) -> None:
        """Test that only directories can be flattened."""
        source = new_dir("in") / "app.dump"
        source.write_text("dump")

        with pytest.raises(ExecutionError) as exc_info:
            await FolderFlattenAdapter().run(FolderFlattenStep(id="flat"), [source], new_dir(), ctx)

        assert exc_info.value.kind == ExecutionErrorKind.ARTIFACT_TYPE_INVALID

    @pytest.mark.asyncio
    async def test_group(self, ctx, new_dir) -> None:
        """Test that every producer's entry lands in the group directory."""
        dump = new_dir("dump") / "app.dump"
        dump.write_text("dump")
        tree = _sample_tree(new_dir("files"))
        out = new_dir()
        step = FolderGroupStep(id="both", folder_name="nightly")

        result = await FolderGroupAdapter().run(step, [dump, tree], out, ctx)

        assert single_entry(out).name == "nightly"
        assert (out / "nightly" / "app.dump").read_text() == "dump"
        assert (out / "nightly" / "site" / "nested" / "data.bin").is_file()
        assert result.runtime == {"entries": ["app.dump", "site"]}

    @pytest.mark.asyncio
    async def test_group_requirements(self, ctx, new_dir) -> None:
        """Test the input count and name uniqueness rules."""
        step = FolderGroupStep(id="both")
        with pytest.raises(ExecutionError) as exc_info:
            await FolderGroupAdapter().run(step, [], new_dir(), ctx)
        assert exc_info.value.kind == ExecutionErrorKind.ARTIFACT_COUNT_INVALID

        first, second = new_dir("a") / "app.dump", new_dir("b") / "app.dump"
        first.write_text("1")
        second.write_text("2")
        with pytest.raises(ExecutionError) as exc_info:
            await FolderGroupAdapter().run(step, [first, second], new_dir(), ctx)
        assert exc_info.value.kind == ExecutionErrorKind.ARTIFACT_NAME_CONFLICT

    @pytest.mark.asyncio
    async def test_filter(self, ctx, new_dir) -> None:
        """Test that only matching children are kept."""
        source = new_dir("in") / "exports"
        source.mkdir()
        for name in ("users.sql", "orders.sql", "notes.txt"):
            (source / name).write_text(name)
        out = new_dir()
        step = FilterStep(id="sql", selection={"method": "glob", "name_glob": "*.sql"})

        result = await FilterAdapter().run(step, [source], out, ctx)

        assert sorted(p.name for p in (out / "exports").iterdir()) == ["orders.sql", "users.sql"]
        assert result.runtime == {"kept": ["orders.sql", "users.sql"], "dropped": 1}

    @pytest.mark.asyncio
    async def test_filter_without_match(self, ctx, new_dir) -> None:
        """Test that nothing matching leaves an empty directory."""
        source = _sample_tree(new_dir("in"))
        out = new_dir()
        step = FilterStep(id="none", selection={"method": "exact", "name": "missing"})

        result = await FilterAdapter().run(step, [source], out, ctx)

        assert single_entry(out).name == "site"
        assert list((out / "site").iterdir()) == []
        assert result.runtime == {"kept": [], "dropped": 2}


# ============================================================================
# Custom script
# ============================================================================


class TestCustomScriptAdapter:
    """Tests for custom scripts."""

    @pytest.mark.asyncio
    async def test_transformer_script(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that the script's single output becomes the step output."""
        source = new_dir("in") / "notes.txt"
        source.write_text("remember the milk")
        script = _script(
            tmp_path,
            "shout",
            'tr a-z A-Z < "$VAULTLINE_ARTIFACTS_IN/notes.txt"'
            ' > "$VAULTLINE_ARTIFACTS_OUT/NOTES.txt"\n',
        )
        out = new_dir()

        result = await CustomScriptAdapter().run(
            CustomScriptStep(id="shout", path=str(script)), [source], out, ctx
        )

        assert single_entry(out).read_text() == "REMEMBER THE MILK"
        assert result.runtime == {"passthrough": False}
        assert not list(ctx.tmp_root.glob("script-*"))

    @pytest.mark.asyncio
    async def test_passthrough_script(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that a passthrough script forwards its input unchanged."""
        source = new_dir("in") / "app.dump"
        source.write_text("dump")
        marker = tmp_path / "notified"
        script = _script(
            tmp_path,
            "notify",
            f'touch "{marker}"\necho scratch > "$VAULTLINE_ARTIFACTS_OUT/ignored.txt"\n',
        )
        out = new_dir()

        await CustomScriptAdapter().run(
            CustomScriptStep(id="notify", path=str(script), passthrough=True), [source], out, ctx
        )

        assert marker.exists()
        assert [p.name for p in out.iterdir()] == ["app.dump"]
        assert (out / "app.dump").read_text() == "dump"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test that a failing script reports its exit code and output."""
        source = new_dir("in") / "app.dump"
        source.write_text("dump")
        script = _script(tmp_path, "broken", "echo partial\necho broken >&2\nexit 4\n")

        with pytest.raises(ExecutionError) as exc_info:
            await CustomScriptAdapter().run(
                CustomScriptStep(id="broken", path=str(script)), [source], new_dir(), ctx
            )

        error = exc_info.value
        assert error.kind == ExecutionErrorKind.NONZERO_SCRIPT_EXIT
        assert error.details["exit_code"] == 4
        assert error.details["stdout"] == "partial\n"
        assert error.details["stderr"] == "broken\n"
        assert not list(ctx.tmp_root.glob("script-*"))

    @pytest.mark.asyncio
    async def test_script_must_be_executable(self, ctx, new_dir, tmp_path: Path) -> None:
        """Test missing and non-executable scripts."""
        source = new_dir("in") / "app.dump"
        source.write_text("dump")
        plain = tmp_path / "plain.sh"
        plain.write_text("#!/bin/sh\n")

        cases = [
            (tmp_path / "missing.sh", ExecutionErrorKind.FSPATH_DOES_NOT_EXIST),
            (plain, ExecutionErrorKind.FSPATH_TYPE_INVALID),
        ]
        for path, kind in cases:
            with pytest.raises(ExecutionError) as exc_info:
                await CustomScriptAdapter().run(
                    CustomScriptStep(id="s", path=str(path)), [source], new_dir(), ctx
                )
            assert exc_info.value.kind == kind
