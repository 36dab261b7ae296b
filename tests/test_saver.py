import pytest

from streamgrab.exceptions import SaveError
from streamgrab.models.stream import SaveRequest
from streamgrab.storage.saver import DiskFileSaver, SaveCancelledError


async def test_save_writes_sanitized_file(tmp_path):
    saver = DiskFileSaver(tmp_path / "out")

    path = await saver.save(SaveRequest(b"data", "show: part 1?.ts"))

    assert path == tmp_path / "out" / "show_ part 1_.ts"
    assert path.read_bytes() == b"data"
    assert not path.with_name(path.name + ".part").exists()


async def test_overwrite_replaces_existing_file(tmp_path):
    (tmp_path / "a.ts").write_bytes(b"old")
    saver = DiskFileSaver(tmp_path, overwrite=True)

    path = await saver.save(SaveRequest(b"new", "a.ts"))

    assert path == tmp_path / "a.ts"
    assert path.read_bytes() == b"new"


async def test_declined_confirmation_cancels(tmp_path):
    asked = []

    def decline(path):
        asked.append(path)
        return False

    saver = DiskFileSaver(tmp_path, confirm=decline)

    with pytest.raises(SaveCancelledError):
        await saver.save(SaveRequest(b"x", "a.ts", confirm=True))

    assert asked == [tmp_path / "a.ts"]
    assert not (tmp_path / "a.ts").exists()


async def test_confirmation_skipped_when_not_requested(tmp_path):
    saver = DiskFileSaver(tmp_path, confirm=lambda path: False)

    path = await saver.save(SaveRequest(b"x", "a.ts", confirm=False))

    assert path.exists()


async def test_failed_write_removes_partial_file(tmp_path):
    # The target name is taken by a directory, so the final rename fails.
    (tmp_path / "a.ts").mkdir()
    saver = DiskFileSaver(tmp_path, overwrite=True)

    with pytest.raises(SaveError):
        await saver.save(SaveRequest(b"x", "a.ts"))

    assert not (tmp_path / "a.ts.part").exists()
    assert (tmp_path / "a.ts").is_dir()


async def test_unusable_output_dir_raises_save_error(tmp_path):
    (tmp_path / "blocker").write_bytes(b"")
    saver = DiskFileSaver(tmp_path / "blocker" / "out")

    with pytest.raises(SaveError):
        await saver.save(SaveRequest(b"x", "a.ts"))
