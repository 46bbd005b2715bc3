from __future__ import annotations

from template_sync.patch.diff import Diff
from template_sync.patch.intersect import intersect_patches, render_patch
from template_sync.patch.minify import minify_patch, split_contextless

FULL_PATCH = (
    "--- a/app.js\n"
    "+++ b/app.js\n"
    "@@ -1,3 +1,3 @@\n"
    " const a = 1\n"
    "-const b = 2\n"
    "+const b = 3\n"
    "-const c = 4\n"
    "+const c = 5\n"
    "@@ -10,2 +10,2 @@\n"
    " function run() {\n"
    "-  return a\n"
    "+  return b\n"
)


def test_minify_splits_hunk_into_contextless_batches() -> None:
    patch = "--- a/f\n+++ b/f\n@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"

    assert minify_patch(patch) == (
        "--- a/f\n+++ b/f\n"
        "@@ -2,1 +2,0 @@\n-b\n"
        "@@ -3,1 +2,2 @@\n+B\n c\n"
    )


def test_split_contextless_drops_context_only_runs() -> None:
    hunk = Diff.parse("--- a/f\n+++ b/f\n@@ -5,3 +5,2 @@\n a\n-b\n c\n").hunks[0]

    batches = split_contextless(hunk)

    assert len(batches) == 1
    assert batches[0].render() == "@@ -6,1 +6,0 @@\n-b\n"


def test_intersect_keeps_only_rejected_changes() -> None:
    reject = (
        "--- app.js\n"
        "+++ app.js\n"
        "@@ -1,3 +1,3 @@\n"
        " const a = 1\n"
        "-const c = 4\n"
        "+const c = 5\n"
    )

    assert intersect_patches(FULL_PATCH, reject) == (
        "--- a/app.js\n"
        "+++ b/app.js\n"
        "@@ -1,3 +1,3 @@\n"
        " const a = 1\n"
        " const b = 2\n"
        "-const c = 4\n"
        "+const c = 5\n"
    )


def test_intersect_falls_back_to_reject_hunk() -> None:
    reject = "--- app.js\n+++ app.js\n@@ -40,1 +40,1 @@\n-unrelated()\n+replaced()\n"

    result = intersect_patches(FULL_PATCH, reject)

    assert "@@ -40,1 +40,1 @@\n-unrelated()\n+replaced()\n" in result
    assert "const b" not in result


def test_render_patch_annotates_hunk_headers() -> None:
    patch = "--- a/x\n+++ b/x\n@@ -4,1 +4,1 @@\n-old\n+new\n ctx"

    plain = render_patch(patch, "src/x.js", color=False)

    assert plain.split("\n") == [
        "--- a/x",
        "+++ b/x",
        "@@ -4,1 +4,1 @@ src/x.js:4",
        "old",
        "new",
        "ctx",
    ]
    assert "\x1b[" in render_patch(patch, "src/x.js")
