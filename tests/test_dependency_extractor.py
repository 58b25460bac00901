"""
Tests for dependency extraction (repository access is faked).
"""

import threading
import time

import pytest

from depree.dependency_extractor import (
    ComputeOnceCache,
    DependencyExtractor,
    ExtractionSettings,
    _source_path,
    parse_trailers,
)
from depree.models import UnresolvedCommit


PARENT = "p" * 40
COMMIT = "c" * 40
BASE_A = "a" * 40
BASE_B = "b" * 40
TRAILER_DEP = "d" * 40

PATCH = """\
diff --git a/lib.py b/lib.py
index 1111111..2222222 100644
--- a/lib.py
+++ b/lib.py
@@ -3,2 +3,3 @@ def f():
 context
-old
+new
+newer
diff --git a/new.txt b/new.txt
new file mode 100644
index 0000000..3333333
--- /dev/null
+++ b/new.txt
@@ -0,0 +1 @@
+hello
diff --git a/gone.txt b/gone.txt
deleted file mode 100644
index 4444444..0000000
--- a/gone.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-x
-y
"""

INSERTION_ONLY_PATCH = """\
diff --git a/lib.py b/lib.py
index 1111111..2222222 100644
--- a/lib.py
+++ b/lib.py
@@ -5,0 +6 @@ def f():
+inserted
"""


class FakeGitManager:
    """Stands in for GitManager with canned diffs and blame output."""

    def __init__(self, patch=PATCH, message="Subject\n", blame=None, parent=PARENT, revisions=None):
        self.patch = patch
        self.message = message
        self.blame = blame or {}
        self.parent = parent
        self.revisions = revisions or {}
        self.patch_calls = 0
        self.blame_calls = []
        self._lock = threading.Lock()

    def get_first_parent(self, commit_hash):
        return self.parent

    def get_commit_patch(self, parent, commit_hash, context_lines=1):
        with self._lock:
            self.patch_calls += 1
        return self.patch

    def blame_range(self, rev, path, start, end):
        with self._lock:
            self.blame_calls.append((rev, path, start, end))
        return list(self.blame.get((path, start, end), []))

    def get_commit_message(self, commit_hash):
        return self.message

    def resolve_commit(self, ref, line=None):
        if ref in self.revisions:
            return self.revisions[ref]
        raise UnresolvedCommit(ref, line)


class TestContentDependencies:
    def test_blames_modified_and_deleted_ranges(self):
        gm = FakeGitManager(
            blame={("lib.py", 3, 4): [BASE_A], ("gone.txt", 1, 2): [BASE_B, BASE_A]}
        )
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))

        assert extractor.dependencies(COMMIT) == frozenset({BASE_A, BASE_B})
        assert gm.blame_calls == [(PARENT, "lib.py", 3, 4), (PARENT, "gone.txt", 1, 2)]

    def test_added_files_are_not_blamed(self):
        gm = FakeGitManager()
        DependencyExtractor(gm, ExtractionSettings(use_trailers=False)).dependencies(COMMIT)
        assert all(call[1] != "new.txt" for call in gm.blame_calls)

    def test_pure_insertion_anchors_on_line_above(self):
        gm = FakeGitManager(patch=INSERTION_ONLY_PATCH, blame={("lib.py", 5, 5): [BASE_A]})
        extractor = DependencyExtractor(gm, ExtractionSettings(context_lines=0, use_trailers=False))
        assert extractor.dependencies(COMMIT) == frozenset({BASE_A})

    def test_root_commit_has_no_content_dependencies(self):
        gm = FakeGitManager(parent=None)
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))
        assert extractor.dependencies(COMMIT) == frozenset()
        assert gm.patch_calls == 0

    def test_quoted_path_is_unescaped(self):
        patch = (
            'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
            "index 1111111..2222222 100644\n"
            '--- "a/caf\\303\\251.txt"\n'
            '+++ "b/caf\\303\\251.txt"\n'
            "@@ -2 +2 @@\n"
            "-old\n"
            "+new\n"
        )
        gm = FakeGitManager(patch=patch, blame={("café.txt", 2, 2): [BASE_A]})
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))

        assert extractor.dependencies(COMMIT) == frozenset({BASE_A})
        assert gm.blame_calls == [(PARENT, "café.txt", 2, 2)]

    def test_submodule_pointer_is_not_blamed(self):
        patch = (
            "diff --git a/sub b/sub\n"
            "index 1111111..2222222 160000\n"
            "--- a/sub\n"
            "+++ b/sub\n"
            "@@ -1 +1 @@\n"
            f"-Subproject commit {BASE_A}\n"
            f"+Subproject commit {BASE_B}\n"
        )
        gm = FakeGitManager(patch=patch)
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))

        assert extractor.dependencies(COMMIT) == frozenset()
        assert gm.blame_calls == []

    def test_binary_change_is_not_blamed(self):
        patch = (
            "diff --git a/blob.bin b/blob.bin\n"
            "index 1111111..2222222 100644\n"
            "Binary files a/blob.bin and b/blob.bin differ\n"
        )
        gm = FakeGitManager(patch=patch)
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))

        assert extractor.dependencies(COMMIT) == frozenset()
        assert gm.blame_calls == []

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("a/lib.py", "lib.py"),
            ("a/my notes.txt", "my notes.txt"),
            ("\"a/caf\\303\\251.txt\"", "caf\u00e9.txt"),
            ("\"a/say \\\"hi\\\".txt\"", "say \"hi\".txt"),
            ("\"a/tab\\there\\\\x\"", "tab\there\\x"),
        ],
    )
    def test_source_path(self, name, expected):
        assert _source_path(name) == expected

    def test_content_signal_can_be_disabled(self):
        gm = FakeGitManager()
        extractor = DependencyExtractor(gm, ExtractionSettings(use_content=False, use_trailers=False))
        assert extractor.dependencies(COMMIT) == frozenset()
        assert gm.patch_calls == 0


class TestTrailerDependencies:
    def test_parse_trailers_from_last_paragraph(self):
        message = (
            "Add thing\n\nBody mentions Depends-on: nothing here\nfor real.\n\n"
            "Depends-on: abc1234\nSigned-off-by: Dev <dev@example.com>\nrequires: def5678\n"
        )
        assert parse_trailers(message) == ["abc1234", "def5678"]

    def test_subject_only_message_has_no_trailers(self):
        assert parse_trailers("Depends-on: abc1234") == []

    def test_trailers_are_resolved(self):
        gm = FakeGitManager(
            message="Subject\n\nDepends-on: abc1234\n",
            revisions={"abc1234": TRAILER_DEP},
        )
        extractor = DependencyExtractor(gm, ExtractionSettings(use_content=False))
        assert extractor.dependencies(COMMIT) == frozenset({TRAILER_DEP})

    def test_unresolvable_trailer_is_skipped(self, caplog):
        gm = FakeGitManager(message="Subject\n\nDepends-on: nosuchrev\n")
        extractor = DependencyExtractor(gm, ExtractionSettings(use_content=False))

        with caplog.at_level("WARNING"):
            assert extractor.dependencies(COMMIT) == frozenset()
        assert "nosuchrev" in caplog.text

    def test_self_reference_is_discarded(self):
        gm = FakeGitManager(message="Subject\n\nRequires: cccc\n", revisions={"cccc": COMMIT})
        extractor = DependencyExtractor(gm, ExtractionSettings(use_content=False))
        assert extractor.dependencies(COMMIT) == frozenset()

    def test_signals_are_unioned(self):
        gm = FakeGitManager(
            message="Subject\n\nDepends-on: abc1234\n",
            revisions={"abc1234": TRAILER_DEP},
            blame={("lib.py", 3, 4): [BASE_A]},
        )
        assert DependencyExtractor(gm).dependencies(COMMIT) == frozenset({BASE_A, TRAILER_DEP})


class TestMemoization:
    def test_dependencies_computed_once(self):
        gm = FakeGitManager()
        extractor = DependencyExtractor(gm)
        first = extractor.dependencies(COMMIT)
        second = extractor.dependencies(COMMIT)
        assert first == second
        assert gm.patch_calls == 1

    def test_extract_all_parallel(self):
        gm = FakeGitManager(blame={("lib.py", 3, 4): [BASE_A]})
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))
        commits = [f"{i:040x}" for i in range(1, 9)]

        results = extractor.extract_all(commits + commits[:3], jobs=4)

        assert set(results) == set(commits)
        assert all(deps == frozenset({BASE_A}) for deps in results.values())
        assert gm.patch_calls == len(commits)

    def test_extract_all_sequential_keeps_order(self):
        gm = FakeGitManager()
        extractor = DependencyExtractor(gm, ExtractionSettings(use_trailers=False))
        results = extractor.extract_all([COMMIT, BASE_A, COMMIT], jobs=1)
        assert list(results) == [COMMIT, BASE_A]


class TestComputeOnceCache:
    def test_concurrent_callers_share_one_computation(self):
        cache = ComputeOnceCache()
        calls = []

        def compute(key):
            calls.append(key)
            time.sleep(0.05)
            return frozenset({key.upper()})

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get("k", compute)))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls == ["k"]
        assert results == [frozenset({"K"})] * 8
        assert "k" in cache
        assert len(cache) == 1

    def test_failures_are_cached_and_reraised(self):
        cache = ComputeOnceCache()
        calls = []

        def compute(key):
            calls.append(key)
            raise UnresolvedCommit(key)

        with pytest.raises(UnresolvedCommit):
            cache.get("bad", compute)
        with pytest.raises(UnresolvedCommit):
            cache.get("bad", compute)
        assert calls == ["bad"]
