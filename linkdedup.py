#!/usr/bin/env python

# linkdedup - Goes through files and directory trees and replaces files whose
# content is identical with hard links to a single retained copy.
#
# Copyright 2007-2018  Antti Kaihola, Carl Henrik Lunde, Chad Netzer, et al
# Copyright 2003-2018  John L. Villalovos, Hillsboro, Oregon
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the GNU General Public License as published by the Free Software
# Foundation; either version 2 of the License, or (at your option) any later
# version.
#
# This program is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS
# FOR A PARTICULAR PURPOSE.  See the GNU General Public License for more
# details.
#
# You should have received a copy of the GNU General Public License along with
# this program; if not, write to the Free Software Foundation, Inc., 59 Temple
# Place, Suite 330, Boston, MA  02111-1307, USA.

import glob as _glob
import logging as _logging
import os as _os
import stat as _stat
import sys as _sys
import time as _time

from operator import attrgetter as _attrgetter
from optparse import OptionParser as _OptionParser
from optparse import OptionGroup as _OptionGroup
from optparse import SUPPRESS_HELP as _SUPPRESS_HELP
from optparse import TitledHelpFormatter as _TitledHelpFormatter

__all__ = ["Deduplicator", "DedupStats", "DedupError", "Entry",
           "sort_entries", "compare_files", "link_files"]

# global declarations
__version__ = '1.0'
_VERSION = "1.0 - 2026-10-19 (19-Oct-2026)"

DEFAULT_MIN_FILE_SIZE = 16
DEFAULT_BLOCK_SIZE = 1024 * 1024

# Exit statuses for the command line tool
EXIT_OK = 0
EXIT_USAGE = 2
EXIT_NO_FILES = 10

# Error kinds carried by DedupError
STAT_FAILED = "StatFailed"
OPEN_FAILED = "OpenFailed"
READ_FAILED = "ReadFailed"
REMOVE_FAILED = "RemoveFailed"
LINK_FAILED = "LinkFailed"


def _parse_command_line(get_default_options=False):
    usage = "usage: %prog [options] path_or_pattern [ path_or_pattern ... ]"
    version = "%prog: " + _VERSION
    description = """\
This is a tool to find files with identical content among the given files and
directories (searched recursively), and to replace the duplicates with hard
links to a single copy."""

    formatter = _TitledHelpFormatter(max_help_position=26)
    parser = _OptionParser(usage=usage,
                           version=version,
                           description=description,
                           formatter=formatter)
    parser.add_option("-q", "--quiet", dest="verbosity",
                      help="Be quiet (only print errors)",
                      action="store_const", const=0,)

    parser.add_option("-v", "--verbose", dest="verbosity",
                      help="Increase verbosity level (Up to 2 times)",
                      action="count", default=1,)

    parser.add_option("-n", "--dry-run", dest="dry_run",
                      help="Print what would be done, do nothing",
                      action="store_true", default=False,)

    # hidden debug option, each repeat increases debug level
    parser.add_option("-d", "--debug", dest="debug_level",
                      help=_SUPPRESS_HELP,
                      action="count", default=0,)

    group = _OptionGroup(parser, title="File Matching", description="""\
Only regular files of at least the minimum size are considered.  File content
must always match exactly, and files are only linked within one filesystem.
""")
    parser.add_option_group(group)

    group.add_option("-m", "--min-size", dest="min_file_size", metavar="SZ",
                     help="Minimum file size (default: %default)",
                     default=str(DEFAULT_MIN_FILE_SIZE),)

    group.add_option("-b", "--block-size", dest="block_size", metavar="SZ",
                     help="Comparison block size (default: %default)",
                     default="1m",)

    # Allow for a way to get a default options object (for Deduplicator)
    if get_default_options:
        (options, args) = parser.parse_args([])
        options_validation(options, parser)
        return options

    (options, args) = parser.parse_args()
    if not args:
        parser.print_help()
        _sys.stderr.write("\nMust supply one or more files or directories\n")
        _sys.exit(EXIT_USAGE)
    args = [_os.path.normpath(_os.path.expanduser(pattern)) for pattern in args]

    options_validation(options, parser)

    return options, args


def options_validation(options, parser):
    # The DEBUG environment variable is an alternative to the -d option
    if _os.environ.get("DEBUG"):
        options.debug_level = max(options.debug_level, 2)
    if options.debug_level > 1:
        _logging.getLogger().setLevel(_logging.DEBUG)

    # Convert "humanized" size inputs to integer bytes
    try:
        options.min_file_size = _humanized_number_to_bytes(options.min_file_size)
    except ValueError:
        parser.error("option -m: invalid integer value: '%s'" % options.min_file_size)
    try:
        options.block_size = _humanized_number_to_bytes(options.block_size)
    except ValueError:
        parser.error("option -b: invalid integer value: '%s'" % options.block_size)
    if options.min_file_size < 0:
        parser.error("--min-size cannot be negative")
    if options.block_size <= 0:
        parser.error("--block-size must be greater than zero")

    # Dry run implies verbose output
    if options.dry_run and options.verbosity < 1:
        options.verbosity = 1

    if options.dry_run:
        print("----- Dry run.  The filesystem will not be modified -----")


class DedupError(Exception):
    """A recoverable failure affecting a single pathname."""
    def __init__(self, kind, pathname, error=None):
        Exception.__init__(self, kind, pathname, error)
        self.kind = kind
        self.pathname = pathname
        self.error = error

    def __str__(self):
        if self.error is None:
            return "%s: %s" % (self.kind, self.pathname)
        return "%s: %s\n%s" % (self.kind, self.pathname, self.error)


class Entry:
    """A candidate file, with the size seen when it was collected"""
    def __init__(self, path, size):
        assert size >= 0
        self.path = path
        self.size = size
        self.disposed = False

    def dispose(self):
        """Permanently exclude this entry from further processing"""
        assert not self.disposed
        self.path = None
        self.disposed = True

    def __repr__(self):
        if self.disposed:
            return "<Entry disposed size=%d>" % self.size
        return "<Entry %r size=%d>" % (self.path, self.size)


class Deduplicator:
    def __init__(self, options=None):
        if options is None:
            options = _parse_command_line(get_default_options=True)
        self.options = options
        self.stats = DedupStats(options)

    def run(self, patterns):
        """Collect, sort and deduplicate the files matched by patterns.  Return
        stats.  If no files were collected, stats.regularfiles is zero and
        nothing else is done."""
        # A lone string would otherwise be iterated per character
        if isinstance(patterns, str) or isinstance(patterns, bytes):
            patterns = [patterns]

        entries = []
        for pattern in patterns:
            entries.extend(self.collect_entries(pattern))

        if not entries:
            _logging.warning("No files to deduplicate")
            return self.stats

        sort_entries(entries)
        self.dedup_entries(entries)

        self.stats.print_stats()
        return self.stats

    def collect_entries(self, pattern):
        """Yield an Entry for each regular file matched by the glob pattern,
        recursing into matched directories"""
        options = self.options

        matched = sorted(_glob.glob(pattern))
        if not matched and options.debug_level > 0:
            _logging.debug("No match      : %s" % pattern)

        for pathname in matched:
            try:
                stat_info = _os.lstat(pathname)
            except OSError as error:
                self.stats.error(DedupError(STAT_FAILED, pathname, error))
                continue

            if _stat.S_ISDIR(stat_info.st_mode):
                self.stats.found_directory()
                wildcard = b"*" if isinstance(pathname, bytes) else "*"
                subpattern = _os.path.join(_glob.escape(pathname), wildcard)
                for entry in self.collect_entries(subpattern):
                    yield entry
                continue

            # Symlinks, devices, fifos, etc. are never linked
            if not _stat.S_ISREG(stat_info.st_mode):
                self.stats.found_nonregular_file(pathname)
                continue

            if stat_info.st_size < options.min_file_size:
                self.stats.file_too_small(pathname)
                continue

            self.stats.found_regular_file(pathname)
            yield Entry(pathname, stat_info.st_size)

    def dedup_entries(self, entries):
        """Hard link the identical files among size sorted entries.

        Every entry is disposed by the time this returns.  For each anchor,
        only the run of following entries with the same size is scanned, so the
        entries must already be sorted by size."""
        num_entries = len(entries)
        if self.options.debug_level > 0:
            _logging.debug("Starting deduplication of %d files" % num_entries)

        for i in range(num_entries):
            anchor = entries[i]
            j = i + 1
            while (not anchor.disposed and j < num_entries and
                   entries[j].size == anchor.size):
                candidate = entries[j]
                j += 1
                if not candidate.disposed:
                    self._dedup_pair(anchor, candidate)

            # The anchor's run is finished, it is never used again
            if not anchor.disposed:
                anchor.dispose()

    def _dedup_pair(self, anchor, candidate):
        """Compare a candidate to its anchor, and link them if identical."""
        assert anchor is not candidate
        assert anchor.size == candidate.size

        anchor_stat = self._stat_entry(anchor)
        if anchor_stat is None:
            return
        candidate_stat = self._stat_entry(candidate)
        if candidate_stat is None:
            return

        if anchor_stat.st_dev != candidate_stat.st_dev:
            self.stats.found_different_devices(anchor.path, candidate.path)
            return
        if anchor_stat.st_ino == candidate_stat.st_ino:
            self.stats.found_existing_hardlink(anchor.path, candidate.path)
            return

        try:
            identical = compare_files(anchor.path, candidate.path,
                                      self.options.block_size)
        except DedupError as error:
            self.stats.error(error)
            # An unreadable anchor ends its scan; the remaining candidates get
            # their own turn as anchors.
            if error.pathname == anchor.path:
                anchor.dispose()
            else:
                candidate.dispose()
            return
        self.stats.did_comparison(anchor.path, candidate.path, identical)
        if not identical:
            return

        try:
            link_files(anchor.path, candidate.path, self.options.dry_run)
        except DedupError as error:
            self.stats.error(error)
        else:
            self.stats.did_dedup(anchor.path, candidate.path, candidate_stat)

        # Linked or not, the candidate is resolved
        candidate.dispose()

    def _stat_entry(self, entry):
        """Return current stat info for entry, or dispose it and return None."""
        try:
            return self._stat_pathname(entry.path)
        except OSError as error:
            self.stats.error(DedupError(STAT_FAILED, entry.path, error))
            entry.dispose()
            return None

    def _stat_pathname(self, pathname):
        return _os.lstat(pathname)


class DedupStats:
    def __init__(self, options):
        self.options = options
        self.reset()

    def reset(self):
        self.dircount = 0                   # how many directories we find
        self.regularfiles = 0               # how many regular files we collect
        self.num_nonregular_files = 0       # symlinks, devices, etc. skipped
        self.num_files_too_small = 0        # how many files are too small
        self.comparisons = 0                # how many file content comparisons
        self.equal_comparisons = 0          # how many file comparisons found equal
        self.num_different_devices = 0      # same sized pairs on different devices
        self.hardlinked_previously = 0      # same sized pairs already sharing an inode
        self.deduped_thisrun = 0            # files replaced by links this run
        self.bytes_saved_thisrun = 0        # bytes freed (ie. when nlink goes to zero)
        self.dedupedpairs = []              # list of (keep, removed) pathnames
        self.errors = []                    # list of DedupError
        self.starttime = _time.time()       # track how long it takes

    def found_directory(self):
        self.dircount += 1

    def found_regular_file(self, pathname):
        self.regularfiles += 1
        if self.options.debug_level > 4:
            _logging.debug("File          : %s" % pathname)

    def found_nonregular_file(self, pathname):
        self.num_nonregular_files += 1
        if self.options.debug_level > 3:
            _logging.debug("Not regular   : %s" % pathname)

    def file_too_small(self, pathname):
        self.num_files_too_small += 1
        if self.options.debug_level > 5:
            _logging.debug("File too small: %s" % pathname)

    def did_comparison(self, pathname1, pathname2, result):
        self.comparisons += 1
        if result:
            self.equal_comparisons += 1
        if self.options.debug_level > 0:
            if result:
                _logging.debug("Compared equal: %s" % pathname1)
                _logging.debug(" to           : %s" % pathname2)
            else:
                _logging.debug("Compared      : %s" % pathname1)
                _logging.debug(" to           : %s" % pathname2)

    def found_different_devices(self, pathname1, pathname2):
        self.num_different_devices += 1
        if self.options.debug_level > 2:
            _logging.debug("Other device  : %s" % pathname1)
            _logging.debug(" and          : %s" % pathname2)

    def found_existing_hardlink(self, pathname1, pathname2):
        self.hardlinked_previously += 1
        if self.options.debug_level > 2:
            _logging.debug("Existing link : %s" % pathname1)
            _logging.debug(" with         : %s" % pathname2)

    def did_dedup(self, keep_pathname, removed_pathname, removed_stat_info):
        self.dedupedpairs.append((keep_pathname, removed_pathname))
        self.deduped_thisrun += 1
        if removed_stat_info.st_nlink == 1:
            # We only save bytes if the last link was actually removed.
            self.bytes_saved_thisrun += removed_stat_info.st_size
        if self.options.verbosity > 0:
            print("%s -> %s" % (keep_pathname, removed_pathname))

    def error(self, error):
        self.errors.append(error)
        if error.kind == REMOVE_FAILED:
            _logging.error("Failed to remove: %s\n%s" % (error.pathname, error.error))
        elif error.kind == LINK_FAILED:
            # The removed pathname is now missing from the tree
            _logging.critical("Failed to hardlink, file is now missing: %s\n%s" % (error.pathname, error.error))
        elif error.kind == OPEN_FAILED:
            _logging.error("Cannot open: %s\n%s" % (error.pathname, error.error))
        elif error.kind == READ_FAILED:
            _logging.error("Cannot read: %s\n%s" % (error.pathname, error.error))
        else:
            _logging.error("Unable to get stat info for: %s\n%s" % (error.pathname, error.error))

    def print_stats(self):
        if self.options.verbosity < 2:
            return

        print("Deduplication statistics")
        print("------------------------")
        if self.options.dry_run:
            print("Statistics reflect what would result if this were not a dry run")
        print("Directories                : %s" % self.dircount)
        print("Files                      : %s" % self.regularfiles)
        print("Comparisons                : %s" % self.comparisons)
        print("Equal comparisons          : %s" % self.equal_comparisons)
        if self.options.dry_run:
            s1 = "Linkable files found       : %s"
            s2 = "Additional linkable bytes  : %s (%s)"
        else:
            s1 = "Hardlinked this run        : %s"
            s2 = "Additional linked bytes    : %s (%s)"
        print(s1 % self.deduped_thisrun)
        print(s2 % (self.bytes_saved_thisrun, _humanize_number(self.bytes_saved_thisrun)))
        print("Already hardlinked pairs   : %s" % self.hardlinked_previously)
        if self.num_different_devices:
            print("Pairs on other devices     : %s" % self.num_different_devices)
        if self.num_files_too_small:
            print("Total too small files      : %s" % self.num_files_too_small)
        if self.num_nonregular_files:
            print("Total non-regular files    : %s" % self.num_nonregular_files)
        if self.errors:
            print("Errors                     : %s" % len(self.errors))
        if self.options.debug_level > 0:
            print("Total run time             : %s seconds" % round(_time.time() - self.starttime, 3))


#################
# Module functions
#################

def sort_entries(entries):
    """Sort entries in place by size.  The sort is stable, so equal sized
    entries keep their collection order."""
    entries.sort(key=_attrgetter('size'))


def compare_files(pathname1, pathname2, block_size=DEFAULT_BLOCK_SIZE):
    """Return True if the two files have identical content.

    Blocks are read from both files in lock step, and the comparison stops at
    the first block that differs.  Raises DedupError naming the offending
    pathname if either file can't be opened or read."""
    try:
        f1 = open(pathname1, 'rb')
    except OSError as error:
        raise DedupError(OPEN_FAILED, pathname1, error)

    try:
        try:
            f2 = open(pathname2, 'rb')
        except OSError as error:
            raise DedupError(OPEN_FAILED, pathname2, error)

        try:
            while True:
                block1 = _read_block(f1, pathname1, block_size)
                block2 = _read_block(f2, pathname2, block_size)
                if block1 != block2:
                    return False
                if not block1:
                    return True
        finally:
            f2.close()
    finally:
        f1.close()


def _read_block(f, pathname, block_size):
    try:
        return f.read(block_size)
    except OSError as error:
        raise DedupError(READ_FAILED, pathname, error)


def link_files(keep_pathname, remove_pathname, dry_run=False):
    """Replace remove_pathname with a hard link to keep_pathname.

    The removal and the linking are two separate steps.  If the removal fails,
    linking isn't attempted.  If the linking fails, remove_pathname no longer
    exists.  Either failure raises DedupError."""
    if dry_run:
        return

    try:
        _os.unlink(remove_pathname)
    except OSError as error:
        raise DedupError(REMOVE_FAILED, remove_pathname, error)

    try:
        _os.link(keep_pathname, remove_pathname)
    except OSError as error:
        raise DedupError(LINK_FAILED, remove_pathname, error)


def _humanize_number(number):
    if number >= 1024 ** 5:
        return ("%.3f PiB" % (number / (1024.0 ** 5)))
    if number >= 1024 ** 4:
        return ("%.3f TiB" % (number / (1024.0 ** 4)))
    if number >= 1024 ** 3:
        return ("%.3f GiB" % (number / (1024.0 ** 3)))
    if number >= 1024 ** 2:
        return ("%.3f MiB" % (number / (1024.0 ** 2)))
    if number >= 1024:
        return ("%.3f KiB" % (number / 1024.0))
    return ("%d bytes" % number)


def _humanized_number_to_bytes(s):
    """Parses numbers with size specifiers like 'k', 'm', 'g', or 't'.
    Deliberately ignores multi-letter abbrevs like 'kb' or 'kib'"""

    # Already converted (ie. options validated twice)
    if isinstance(s, int):
        return s

    if not s:
        int(s)  # Deliberately raise ValueError on empty input

    s = s.lower()
    multipliers = {'k': 1024,
                   'm': 1024**2,
                   'g': 1024**3,
                   't': 1024**4,
                   'p': 1024**5}

    last_char = s[-1]
    if last_char not in multipliers:
        return int(s)
    else:
        s = s[:-1]
        multiplier = multipliers[last_char]
        return multiplier * int(s)


def main():
    # Remove user from logging output
    _logging.basicConfig(format='%(levelname)s:%(message)s')

    # Parse our argument list and get our list of paths and patterns
    options, patterns = _parse_command_line()

    dd = Deduplicator(options)
    stats = dd.run(patterns)
    if not stats.regularfiles:
        _sys.exit(EXIT_NO_FILES)


if __name__ == '__main__':
    main()
