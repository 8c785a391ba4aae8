#!/usr/bin/env python

import contextlib
import io
import os
import os.path
import shutil
import stat
import sys
import tempfile
import unittest

from collections import namedtuple
from unittest import mock

import linkdedup

testdata0 = b""
testdata1 = b"1234" * 1024 + b"abc"
testdata2 = b"1234" * 1024 + b"xyz"
testdata3 = b"foo" * 6  # Just above the default minimum size

FakeStat = namedtuple("FakeStat", "st_dev st_ino st_nlink st_size")


def get_inode(filename):
    return os.lstat(filename).st_ino


def get_options(**kwargs):
    options = linkdedup._parse_command_line(get_default_options=True)
    options.verbosity = 0
    for name, value in kwargs.items():
        setattr(options, name, value)
    return options


class TestModuleFunctions(unittest.TestCase):
    def test_humanize_number(self):
        f = linkdedup._humanize_number
        self.assertEqual("0 bytes", f(0))
        self.assertEqual("1 bytes", f(1))
        self.assertEqual("1023 bytes", f(1023))
        self.assertEqual("1.000 KiB", f(1024))
        self.assertEqual("1.000 MiB", f(1024**2))
        self.assertEqual("1.000 GiB", f(1024**3))
        self.assertEqual("1.000 TiB", f(1024**4))
        self.assertEqual("1.000 PiB", f(1024**5))

    def test_humanized_number_to_bytes(self):
        f = linkdedup._humanized_number_to_bytes
        self.assertEqual(0, f("0"))
        self.assertEqual(16, f("16"))
        self.assertEqual(1024, f("1k"))
        self.assertEqual(1024, f("1K"))
        self.assertEqual(2048, f("2k"))
        self.assertEqual(1024**2, f("1m"))
        self.assertEqual(1024**3, f("1g"))
        self.assertEqual(1024**4, f("1t"))
        self.assertEqual(1024**5, f("1p"))
        self.assertEqual(4096, f(4096))

        self.assertRaises(ValueError, f, "")
        self.assertRaises(ValueError, f, "1kk")
        self.assertRaises(ValueError, f, "1j")
        self.assertRaises(ValueError, f, "k")

    def test_default_options(self):
        options = linkdedup._parse_command_line(get_default_options=True)
        self.assertEqual(options.min_file_size, 16)
        self.assertEqual(options.block_size, 1024 * 1024)
        self.assertEqual(options.verbosity, 1)
        self.assertFalse(options.dry_run)

    def test_sort_entries_is_stable(self):
        entries = [linkdedup.Entry("c", 30),
                   linkdedup.Entry("a1", 10),
                   linkdedup.Entry("b", 20),
                   linkdedup.Entry("a2", 10),
                   linkdedup.Entry("a3", 10)]
        linkdedup.sort_entries(entries)
        self.assertEqual([e.path for e in entries], ["a1", "a2", "a3", "b", "c"])
        self.assertEqual([e.size for e in entries], [10, 10, 10, 20, 30])

    def test_entry_dispose(self):
        entry = linkdedup.Entry("a", 100)
        self.assertFalse(entry.disposed)
        entry.dispose()
        self.assertTrue(entry.disposed)
        self.assertIsNone(entry.path)
        self.assertEqual(entry.size, 100)
        self.assertRaises(AssertionError, entry.dispose)

    def test_dedup_error_str(self):
        error = linkdedup.DedupError(linkdedup.OPEN_FAILED, "a", OSError("boom"))
        self.assertEqual(error.kind, "OpenFailed")
        self.assertEqual(error.pathname, "a")
        self.assertTrue(str(error).startswith("OpenFailed: a"))


class BaseTests(unittest.TestCase):
    # self.file_contents = { name: data }

    def tearDown(self):
        """Provide default tearDown() for all derived classes (for cleanup of
        files and dirs)."""
        self.remove_tempdir()

    def setup_tempdir(self):
        self.orig_cwd = os.getcwd()
        self.root = tempfile.mkdtemp()
        os.chdir(self.root)

        # Keep track of all files, and their content, for verifying later
        self.file_contents = {}

    def remove_tempdir(self):
        os.chdir(self.orig_cwd)
        shutil.rmtree(self.root)

    def verify_file_contents(self):
        for pathname, contents in self.file_contents.items():
            with open(pathname, "rb") as f:
                actual = f.read()
                self.assertEqual(actual, contents)

    def make_file(self, pathname, contents):
        assert pathname not in self.file_contents
        assert not pathname.lstrip().startswith('/')
        dirname = os.path.dirname(pathname)
        if dirname and not os.path.isdir(dirname):
            os.makedirs(dirname)
        with open(pathname, 'wb') as f:
            f.write(contents)

        self.file_contents[pathname] = contents

    def make_linked_file(self, src, dst):
        assert dst not in self.file_contents
        os.link(src, dst)
        self.file_contents[dst] = self.file_contents[src]

    def count_nlinks(self):
        """Return a dictionary of the nlink count for each tracked file."""
        nlink_counts = {}
        for pathname in self.file_contents:
            nlink_counts[pathname] = os.lstat(pathname).st_nlink
        return nlink_counts


class TestCompareFiles(BaseTests):
    def setUp(self):
        self.setup_tempdir()

    def test_identical(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        self.assertTrue(linkdedup.compare_files("a", "b"))
        self.assertTrue(linkdedup.compare_files("a", "b", block_size=7))

    def test_different(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata2)
        self.assertFalse(linkdedup.compare_files("a", "b"))
        self.assertFalse(linkdedup.compare_files("a", "b", block_size=7))

    def test_different_lengths(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1 + b"more")
        self.assertFalse(linkdedup.compare_files("a", "b"))
        self.assertFalse(linkdedup.compare_files("b", "a"))

    def test_block_boundaries(self):
        block_size = 16
        for size in (0, 1, block_size - 1, block_size, block_size + 1,
                     3 * block_size, 3 * block_size + 5):
            data = bytes(bytearray(i % 251 for i in range(size)))
            a = "a%d" % size
            b = "b%d" % size
            self.make_file(a, data)
            self.make_file(b, data)
            self.assertTrue(linkdedup.compare_files(a, b, block_size))

            if size:
                # Change only the last byte
                c = "c%d" % size
                self.make_file(c, data[:-1] + bytes(bytearray([(data[-1] + 1) % 256])))
                self.assertFalse(linkdedup.compare_files(a, c, block_size))

    def test_open_failed(self):
        self.make_file("a", testdata1)
        with self.assertRaises(linkdedup.DedupError) as cm:
            linkdedup.compare_files("missing", "a")
        self.assertEqual(cm.exception.kind, linkdedup.OPEN_FAILED)
        self.assertEqual(cm.exception.pathname, "missing")

        with self.assertRaises(linkdedup.DedupError) as cm:
            linkdedup.compare_files("a", "missing")
        self.assertEqual(cm.exception.kind, linkdedup.OPEN_FAILED)
        self.assertEqual(cm.exception.pathname, "missing")


class TestLinkFiles(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)

    def test_link(self):
        linkdedup.link_files("a", "b")
        self.assertEqual(get_inode("a"), get_inode("b"))
        self.assertEqual(os.lstat("a").st_nlink, 2)
        self.verify_file_contents()

    def test_dry_run(self):
        linkdedup.link_files("a", "b", dry_run=True)
        self.assertNotEqual(get_inode("a"), get_inode("b"))
        self.assertEqual(self.count_nlinks(), {"a": 1, "b": 1})

    def test_remove_failed(self):
        with mock.patch("linkdedup._os.link") as link:
            with self.assertRaises(linkdedup.DedupError) as cm:
                linkdedup.link_files("a", "missing")
        self.assertEqual(cm.exception.kind, linkdedup.REMOVE_FAILED)
        self.assertEqual(cm.exception.pathname, "missing")
        self.assertFalse(link.called)
        self.verify_file_contents()

    def test_link_failed(self):
        with self.assertRaises(linkdedup.DedupError) as cm:
            linkdedup.link_files("missing", "b")
        self.assertEqual(cm.exception.kind, linkdedup.LINK_FAILED)
        self.assertEqual(cm.exception.pathname, "b")

        # The removal already happened
        self.assertFalse(os.path.exists("b"))
        del self.file_contents["b"]
        self.verify_file_contents()


class TestCollectEntries(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.make_file("dir1/name1.ext", testdata1)
        self.make_file("dir1/sub/name2.ext", testdata2)
        self.make_file("dir1/small", b"tiny")
        self.make_file("dir1/.hidden", testdata1)
        self.make_file("dir2/name1.noext", testdata3)
        os.symlink("name1.ext", "dir1/symlink")

    def collect(self, pattern, **kwargs):
        dd = linkdedup.Deduplicator(get_options(**kwargs))
        return dd, list(dd.collect_entries(pattern))

    def test_collect_directory(self):
        dd, entries = self.collect("dir1")
        self.assertEqual([e.path for e in entries],
                         ["dir1/name1.ext", "dir1/sub/name2.ext"])
        self.assertEqual([e.size for e in entries], [len(testdata1), len(testdata2)])
        self.assertEqual(dd.stats.dircount, 2)
        self.assertEqual(dd.stats.num_files_too_small, 1)
        self.assertEqual(dd.stats.num_nonregular_files, 1)
        self.assertEqual(dd.stats.errors, [])

    def test_collect_min_size(self):
        dd, entries = self.collect("dir1", min_file_size=0)
        self.assertIn("dir1/small", [e.path for e in entries])

        dd, entries = self.collect("dir1", min_file_size=len(testdata1) + 1)
        self.assertEqual(entries, [])
        self.assertEqual(dd.stats.num_files_too_small, 3)

    def test_collect_pattern(self):
        dd, entries = self.collect("dir*/name1.*")
        self.assertEqual([e.path for e in entries],
                         ["dir1/name1.ext", "dir2/name1.noext"])

    def test_collect_no_match(self):
        dd, entries = self.collect("nothing_here")
        self.assertEqual(entries, [])
        self.assertEqual(dd.stats.errors, [])

    def test_collect_stat_failed(self):
        real_lstat = os.lstat

        def failing_lstat(pathname, *args, **kwargs):
            if pathname == "dir1/name1.ext":
                raise OSError("simulated stat failure")
            return real_lstat(pathname, *args, **kwargs)

        with mock.patch("linkdedup._os.lstat", side_effect=failing_lstat):
            dd, entries = self.collect("dir1/*")

        # The unreadable file is skipped, the rest of the tree is collected
        self.assertEqual([e.path for e in entries], ["dir1/sub/name2.ext"])
        self.assertEqual([(e.kind, e.pathname) for e in dd.stats.errors],
                         [(linkdedup.STAT_FAILED, "dir1/name1.ext")])

    def test_collect_bytes_directory(self):
        dd, entries = self.collect(b"dir1")
        self.assertEqual([e.path for e in entries],
                         [b"dir1/name1.ext", b"dir1/sub/name2.ext"])


class TestDedup(BaseTests):
    def setUp(self):
        self.setup_tempdir()

    def run_dedup(self, patterns, **kwargs):
        dd = linkdedup.Deduplicator(get_options(**kwargs))
        return dd.run(patterns)

    def test_three_files(self):
        self.make_file("a", b"A" * 100)
        self.make_file("b", b"A" * 100)
        self.make_file("c", b"C" * 100)

        stats = self.run_dedup(["a", "b", "c"])

        self.verify_file_contents()
        self.assertEqual(stats.dedupedpairs, [("a", "b")])
        self.assertEqual(get_inode("a"), get_inode("b"))
        self.assertNotEqual(get_inode("a"), get_inode("c"))
        self.assertEqual(len(set(get_inode(p) for p in "abc")), 2)
        self.assertEqual(stats.comparisons, 2)
        self.assertEqual(stats.bytes_saved_thisrun, 100)
        self.assertEqual(stats.errors, [])

    def test_tree(self):
        self.make_file("dir1/name1.ext", testdata1)
        self.make_file("dir1/name2.ext", testdata1)
        self.make_file("dir1/name3.ext", testdata2)
        self.make_file("dir2/name1.ext", testdata1)
        self.make_file("dir3/name1.ext", testdata2)
        self.make_file("dir6/name1.ext", testdata3)
        self.make_file("dir6/name2.ext", testdata3)
        self.make_file("dir6/small1", b"foo")
        self.make_file("dir6/small2", b"foo")

        stats = self.run_dedup(".")

        self.verify_file_contents()
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.ext"))
        self.assertEqual(get_inode("dir1/name3.ext"), get_inode("dir3/name1.ext"))
        self.assertEqual(get_inode("dir6/name1.ext"), get_inode("dir6/name2.ext"))
        self.assertNotEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name3.ext"))

        # Below the default minimum size
        self.assertNotEqual(get_inode("dir6/small1"), get_inode("dir6/small2"))
        self.assertEqual(stats.deduped_thisrun, 4)

    def test_different_content_becomes_anchor(self):
        # b differs from a, but later is the anchor that d is linked to
        self.make_file("a", testdata1)
        self.make_file("b", testdata2)
        self.make_file("c", testdata1)
        self.make_file("d", testdata2)

        stats = self.run_dedup(["a", "b", "c", "d"])

        self.assertEqual(stats.dedupedpairs, [("a", "c"), ("b", "d")])
        self.assertEqual(get_inode("a"), get_inode("c"))
        self.assertEqual(get_inode("b"), get_inode("d"))
        self.verify_file_contents()

    def test_idempotent(self):
        self.make_file("dir1/a", testdata1)
        self.make_file("dir1/b", testdata1)
        self.make_file("dir2/c", testdata1)
        self.make_file("dir2/d", testdata2)

        stats = self.run_dedup(".")
        self.assertEqual(stats.deduped_thisrun, 2)
        nlinks = self.count_nlinks()

        stats = self.run_dedup(".")
        self.assertEqual(stats.dedupedpairs, [])
        self.assertEqual(stats.deduped_thisrun, 0)
        self.assertTrue(stats.hardlinked_previously > 0)
        self.assertEqual(self.count_nlinks(), nlinks)
        self.verify_file_contents()

    def test_existing_hardlink_not_compared(self):
        self.make_file("a", testdata1)
        self.make_linked_file("a", "b")

        stats = self.run_dedup(["a", "b"])

        self.assertEqual(stats.comparisons, 0)
        self.assertEqual(stats.hardlinked_previously, 1)
        self.assertEqual(stats.dedupedpairs, [])

    def test_dry_run(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        self.make_file("c", testdata2)
        self.make_file("d", testdata2)
        self.make_file("e", testdata1)
        nlinks = self.count_nlinks()

        with contextlib.redirect_stdout(io.StringIO()):
            dry_stats = self.run_dedup(".", dry_run=True)

        self.assertEqual(self.count_nlinks(), nlinks)
        self.assertEqual(len(set(get_inode(p) for p in "abcde")), 5)
        self.verify_file_contents()

        stats = self.run_dedup(".")
        self.assertEqual(dry_stats.dedupedpairs, stats.dedupedpairs)
        self.assertEqual(len(stats.dedupedpairs), 3)
        self.assertEqual(len(set(get_inode(p) for p in "abcde")), 2)

    def test_content_fidelity(self):
        block_size = 64
        sizes = [0, 1, block_size - 1, block_size, block_size + 1,
                 2 * block_size, 4 * block_size + 3]
        for size in sizes:
            data = bytes(bytearray((i * 7) % 256 for i in range(size)))
            self.make_file("keep%d" % size, data)
            self.make_file("dup%d" % size, data)

        stats = self.run_dedup(".", min_file_size=0, block_size=block_size)

        self.assertEqual(len(stats.dedupedpairs), len(sizes))
        for keep, removed in stats.dedupedpairs:
            self.assertEqual(get_inode(keep), get_inode(removed))
            with open(keep, "rb") as f1, open(removed, "rb") as f2:
                self.assertEqual(f1.read(), f2.read())
        self.verify_file_contents()

    def test_zero_length_skipped_by_default(self):
        self.make_file("a", testdata0)
        self.make_file("b", testdata0)

        stats = self.run_dedup(["a", "b"])

        self.assertEqual(stats.regularfiles, 0)
        self.assertEqual(stats.num_files_too_small, 2)
        self.assertNotEqual(get_inode("a"), get_inode("b"))

    def test_never_links_different_sizes(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1 + b"x")
        self.make_file("c", testdata1)
        self.make_file("d", testdata1 + b"x")
        self.make_file("e", testdata1 + b"xy")

        sizes = []
        real_link_files = linkdedup.link_files

        def recording_link_files(keep, remove, dry_run=False):
            sizes.append((os.lstat(keep).st_size, os.lstat(remove).st_size))
            return real_link_files(keep, remove, dry_run)

        with mock.patch("linkdedup.link_files", side_effect=recording_link_files):
            stats = self.run_dedup(".")

        self.assertEqual(len(sizes), 2)
        for keep_size, remove_size in sizes:
            self.assertEqual(keep_size, remove_size)
        self.assertEqual(stats.dedupedpairs, [("./a", "./c"), ("./b", "./d")])

    def test_different_devices(self):
        self.make_file("x", b"z" * 500)
        self.make_file("y", b"z" * 500)

        def fake_stat(dd, pathname):
            st = os.lstat(pathname)
            st_dev = st.st_dev + 1 if pathname == "y" else st.st_dev
            return FakeStat(st_dev, st.st_ino, st.st_nlink, st.st_size)

        with mock.patch.object(linkdedup.Deduplicator, "_stat_pathname",
                               autospec=True, side_effect=fake_stat):
            with mock.patch("linkdedup.link_files") as link_files:
                with mock.patch("linkdedup.compare_files") as compare_files:
                    stats = self.run_dedup(["x", "y"])

        self.assertFalse(compare_files.called)
        self.assertFalse(link_files.called)
        self.assertEqual(stats.errors, [])
        self.assertEqual(stats.num_different_devices, 1)
        self.assertNotEqual(get_inode("x"), get_inode("y"))

    def test_disposed_entries_never_revisited(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)
        self.make_file("c", testdata2)
        self.make_file("d", testdata2)
        self.make_file("e", testdata1)

        calls = []
        real_compare_files = linkdedup.compare_files

        def recording_compare_files(pathname1, pathname2, block_size):
            calls.append((pathname1, pathname2))
            return real_compare_files(pathname1, pathname2, block_size)

        dd = linkdedup.Deduplicator(get_options())
        entries = [linkdedup.Entry(p, len(self.file_contents[p])) for p in "abcde"]
        linkdedup.sort_entries(entries)
        with mock.patch("linkdedup.compare_files", side_effect=recording_compare_files):
            dd.dedup_entries(entries)

        self.assertTrue(all(e.disposed for e in entries))
        self.assertEqual(dd.stats.dedupedpairs, [("a", "b"), ("a", "e"), ("c", "d")])

        # Once linked away, b and e are never compared again; once its scan
        # is over, a is never compared again.
        self.assertEqual(calls, [("a", "b"), ("a", "c"), ("a", "d"), ("a", "e"),
                                 ("c", "d")])
        for pathname1, pathname2 in calls:
            self.assertNotEqual(pathname1, pathname2)

    def test_anchor_open_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        real_compare_files = linkdedup.compare_files

        def failing_compare_files(pathname1, pathname2, block_size):
            if pathname1 == "a":
                raise linkdedup.DedupError(linkdedup.OPEN_FAILED, "a")
            return real_compare_files(pathname1, pathname2, block_size)

        with mock.patch("linkdedup.compare_files", side_effect=failing_compare_files) as compare_files:
            stats = self.run_dedup(["a", "b", "c"])

        # The failed anchor abandons its scan, b becomes the next anchor
        self.assertEqual(compare_files.call_count, 2)
        self.assertEqual(stats.dedupedpairs, [("b", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.OPEN_FAILED, "a")])
        self.assertEqual(os.lstat("a").st_nlink, 1)
        self.assertEqual(get_inode("b"), get_inode("c"))

    def test_candidate_open_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        real_compare_files = linkdedup.compare_files

        def failing_compare_files(pathname1, pathname2, block_size):
            if pathname2 == "b":
                raise linkdedup.DedupError(linkdedup.OPEN_FAILED, "b")
            return real_compare_files(pathname1, pathname2, block_size)

        with mock.patch("linkdedup.compare_files", side_effect=failing_compare_files):
            stats = self.run_dedup(["a", "b", "c"])

        self.assertEqual(stats.dedupedpairs, [("a", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.OPEN_FAILED, "b")])
        self.assertEqual(os.lstat("b").st_nlink, 1)
        self.assertEqual(get_inode("a"), get_inode("c"))

    def test_candidate_stat_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        def failing_stat(dd, pathname):
            if pathname == "b":
                raise OSError("simulated stat failure")
            return os.lstat(pathname)

        with mock.patch.object(linkdedup.Deduplicator, "_stat_pathname",
                               autospec=True, side_effect=failing_stat):
            stats = self.run_dedup(["a", "b", "c"])

        self.assertEqual(stats.dedupedpairs, [("a", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.STAT_FAILED, "b")])
        self.assertEqual(os.lstat("b").st_nlink, 1)

    def test_anchor_stat_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        def failing_stat(dd, pathname):
            if pathname == "a":
                raise OSError("simulated stat failure")
            return os.lstat(pathname)

        with mock.patch.object(linkdedup.Deduplicator, "_stat_pathname",
                               autospec=True, side_effect=failing_stat):
            stats = self.run_dedup(["a", "b", "c"])

        # The anchor's scan is abandoned, b becomes the next anchor
        self.assertEqual(stats.dedupedpairs, [("b", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.STAT_FAILED, "a")])
        self.assertEqual(os.lstat("a").st_nlink, 1)
        self.assertEqual(get_inode("b"), get_inode("c"))

    def test_anchor_read_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        real_read_block = linkdedup._read_block

        def failing_read_block(f, pathname, block_size):
            if pathname == "a":
                raise linkdedup.DedupError(linkdedup.READ_FAILED, "a")
            return real_read_block(f, pathname, block_size)

        with mock.patch("linkdedup._read_block", side_effect=failing_read_block):
            stats = self.run_dedup(["a", "b", "c"])

        self.assertEqual(stats.dedupedpairs, [("b", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.READ_FAILED, "a")])
        self.assertEqual(os.lstat("a").st_nlink, 1)
        self.assertEqual(get_inode("b"), get_inode("c"))

    def test_candidate_read_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        real_read_block = linkdedup._read_block

        def failing_read_block(f, pathname, block_size):
            if pathname == "b":
                raise linkdedup.DedupError(linkdedup.READ_FAILED, "b")
            return real_read_block(f, pathname, block_size)

        with mock.patch("linkdedup._read_block", side_effect=failing_read_block):
            stats = self.run_dedup(["a", "b", "c"])

        self.assertEqual(stats.dedupedpairs, [("a", "c")])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.READ_FAILED, "b")])
        self.assertEqual(os.lstat("b").st_nlink, 1)
        self.assertEqual(get_inode("a"), get_inode("c"))

    def test_run_bytes_pattern(self):
        self.make_file("d/a", testdata1)
        self.make_file("d/b", testdata1)

        stats = self.run_dedup(b"d")

        self.assertEqual(stats.dedupedpairs, [(b"d/a", b"d/b")])
        self.assertEqual(get_inode("d/a"), get_inode("d/b"))
        self.verify_file_contents()

    def test_remove_failed(self):
        for p in "abc":
            self.make_file(p, testdata1)

        with mock.patch("linkdedup._os.unlink", side_effect=OSError("simulated")):
            stats = self.run_dedup(["a", "b", "c"])

        # Both candidates are disposed, so neither is tried again as an anchor
        self.assertEqual(stats.dedupedpairs, [])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.REMOVE_FAILED, "b"),
                          (linkdedup.REMOVE_FAILED, "c")])
        self.assertEqual(stats.comparisons, 2)
        self.assertEqual(self.count_nlinks(), {"a": 1, "b": 1, "c": 1})
        self.verify_file_contents()

    def test_link_failed(self):
        self.make_file("a", testdata1)
        self.make_file("b", testdata1)

        with mock.patch("linkdedup._os.link", side_effect=OSError("simulated")):
            stats = self.run_dedup(["a", "b"])

        self.assertEqual(stats.dedupedpairs, [])
        self.assertEqual([(e.kind, e.pathname) for e in stats.errors],
                         [(linkdedup.LINK_FAILED, "b")])
        self.assertFalse(os.path.exists("b"))
        del self.file_contents["b"]
        self.verify_file_contents()


class TestCommandLine(BaseTests):
    def setUp(self):
        self.setup_tempdir()
        self.saved_argv = sys.argv
        self.make_file("dir1/name1.ext", testdata1)
        self.make_file("dir1/name2.ext", testdata1)
        self.make_file("dir2/name1.ext", testdata1)
        self.make_file("dir2/name3.ext", testdata2)

    def tearDown(self):
        sys.argv = self.saved_argv
        BaseTests.tearDown(self)

    def test_main(self):
        sys.argv = ["linkdedup.py", "-q", self.root]
        linkdedup.main()

        self.verify_file_contents()
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir1/name2.ext"))
        self.assertEqual(get_inode("dir1/name1.ext"), get_inode("dir2/name1.ext"))
        self.assertEqual(os.lstat("dir2/name3.ext").st_nlink, 1)

    def test_main_dry_run(self):
        sys.argv = ["linkdedup.py", "-n", self.root]
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            linkdedup.main()

        self.assertEqual(self.count_nlinks(), {"dir1/name1.ext": 1,
                                               "dir1/name2.ext": 1,
                                               "dir2/name1.ext": 1,
                                               "dir2/name3.ext": 1})
        lines = output.getvalue().splitlines()
        self.assertIn("%s -> %s" % (os.path.join(self.root, "dir1/name1.ext"),
                                    os.path.join(self.root, "dir1/name2.ext")), lines)

    def test_main_statistics(self):
        sys.argv = ["linkdedup.py", "-v", "dir1"]
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            linkdedup.main()

        self.assertIn("dir1/name1.ext -> dir1/name2.ext", output.getvalue())
        self.assertIn("Deduplication statistics", output.getvalue())

    def test_main_no_files(self):
        sys.argv = ["linkdedup.py", "-q", "-m", "1m", self.root]
        with self.assertRaises(SystemExit) as cm:
            linkdedup.main()
        self.assertEqual(cm.exception.code, linkdedup.EXIT_NO_FILES)

    def test_main_bad_block_size(self):
        sys.argv = ["linkdedup.py", "-q", "-b", "0", self.root]
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                linkdedup.main()
        self.assertEqual(cm.exception.code, linkdedup.EXIT_USAGE)

    def test_main_no_args(self):
        sys.argv = ["linkdedup.py"]
        with contextlib.redirect_stdout(io.StringIO()):
            with contextlib.redirect_stderr(io.StringIO()):
                with self.assertRaises(SystemExit) as cm:
                    linkdedup.main()
        self.assertEqual(cm.exception.code, linkdedup.EXIT_USAGE)


if __name__ == '__main__':
    unittest.main()
