import pytest

from aurion.self_edit.errors import LockTimeout
from aurion.self_edit.locks import LockRegistry


def test_held_target_blocks_another_registry(tmp_path):
    holder = LockRegistry(tmp_path / "locks", timeout=5)
    waiter = LockRegistry(tmp_path / "locks", timeout=0.2)
    with holder.targets(["addons/x.txt"]):
        with pytest.raises(LockTimeout) as exc:
            with waiter.targets(["addons/x.txt"]):
                pass
        assert exc.value.status_code == 409
        # unrelated keys are free
        with waiter.targets(["addons/y.txt"]):
            pass
    with waiter.targets(["addons/x.txt"]):
        pass


def test_failed_acquire_releases_keys_already_taken(tmp_path):
    holder = LockRegistry(tmp_path, timeout=5)
    waiter = LockRegistry(tmp_path, timeout=0.2)
    with holder.targets(["b.txt"]):
        with pytest.raises(LockTimeout):
            with waiter.targets(["a.txt", "b.txt"]):
                pass
    with holder.targets(["a.txt"]):
        pass


def test_lock_files_do_not_collide(tmp_path):
    reg = LockRegistry(tmp_path)
    assert reg.lock_path("target:a/b") != reg.lock_path("target:a_b")
    assert reg.lock_path("proposal:x").parent == tmp_path
