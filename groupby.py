#!/usr/bin/env python
# -*- coding: utf-8 -*-

VERSION = "0.1.dev1"
COPYRIGHT = "Copyright © 2016 Brett Smith <brettcsmith@brettcsmith.org>"
LICENSE = """This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <http://www.gnu.org/licenses/>."""

import argparse
import collections
import errno
import io
import itertools
import locale
import os
import re
import select
import shlex
import signal
import subprocess
import sys
import traceback

ENCODING = locale.getpreferredencoding()
PROG_NAME = 'groupby'

class UserInputError(ValueError):
    pass


class UserArgumentsError(UserInputError):
    pass


class UserPatternError(UserInputError):
    pass


class ExceptionWrapper(object):
    def __init__(self, wrapper, *wrapped_types):
        self.wrapper = wrapper
        self.wrapped_types = wrapped_types

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        if (exc_type is None) or not issubclass(exc_type, self.wrapped_types):
            return False
        if isinstance(self.wrapper, BaseException):
            error = self.wrapper
        else:
            error = self.wrapper(*exc_value.args)
        raise error from exc_value


class ExceptHook(object):
    NAME = PROG_NAME
    USER_ERRORS = [
        (UserPatternError, "error compiling pattern {!r}"),
        (UserArgumentsError, "invalid arguments"),
        (UserInputError, "error reading input"),
    ]
    USER_EXITCODE = 3
    ERROR_EXITCODE = 1

    def __init__(self, stderr=None):
        self.stderr = sys.stderr if (stderr is None) else stderr
        self.show_tb = False

    @classmethod
    def with_sys_stderr(cls, encoding=None):
        if encoding is None:
            encoding = ENCODING
        stderr = io.open(sys.stderr.fileno(), 'w', encoding=encoding, closefd=False)
        return cls(stderr)

    @staticmethod
    def _describe(error):
        strerror = getattr(error, 'strerror', None)
        if strerror is None:
            return [str(error)] if error.args else []
        filename = getattr(error, 'filename', None)
        parts = [] if (filename is None) else [str(filename)]
        parts.append(strerror)
        return parts

    def _user_error_parts(self, exc_value):
        for exc_type, fmt_s in self.USER_ERRORS:
            if isinstance(exc_value, exc_type):
                break
        message = exc_value.args[0] if exc_value.args else ''
        header = fmt_s.format(message)
        parts = [header]
        if (header == fmt_s) and message and (message != header):
            parts.append(message)
        cause = exc_value.__cause__
        while cause is not None:
            parts.extend(self._describe(cause))
            cause = cause.__cause__
        return parts

    def _write_line(self, parts):
        self.stderr.write("{}: {}\n".format(self.NAME, ": ".join(parts)))

    def __call__(self, exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.exit(-signal.SIGINT)
        internal = False
        if isinstance(exc_value, UserInputError):
            exitcode = self.USER_EXITCODE
            parts = self._user_error_parts(exc_value)
        elif isinstance(exc_value, EnvironmentError):
            exitcode = self.ERROR_EXITCODE
            parts = ["error"] + self._describe(exc_value)
        else:
            exitcode = self.ERROR_EXITCODE
            internal = True
            parts = ["internal " + exc_type.__name__]
            if exc_value.args:
                parts.append(str(exc_value.args[0]))
        self._write_line(parts)
        if self.show_tb:
            traceback.print_exception(exc_type, exc_value, exc_tb, file=self.stderr)
        elif internal:
            self.stderr.write(
                "This is probably a bug in {}.  Please rerun with `--debug` "
                "and report the traceback.\n".format(self.NAME))
        self.stderr.flush()
        sys.exit(exitcode)


class InputSplitter(object):
    READ_SIZE = 4096

    def __init__(self, in_stream, delimiter):
        self.in_stream = in_stream
        self.delimiter = delimiter

    def __iter__(self):
        delimiter_len = len(self.delimiter)
        # Enough trailing text to hold a delimiter split across two reads.
        carry_len = delimiter_len - 1
        pre_strings = []
        carry = ''
        for hunk in iter(lambda: self.in_stream.read(self.READ_SIZE), ''):
            hunk = carry + hunk
            start_index = 0
            while True:
                try:
                    split_index = hunk.index(self.delimiter, start_index)
                except ValueError:
                    break
                pre_strings.append(hunk[start_index:split_index])
                yield ''.join(pre_strings)
                pre_strings = []
                start_index = split_index + delimiter_len
            keep_index = max(len(hunk) - carry_len, start_index)
            if keep_index > start_index:
                pre_strings.append(hunk[start_index:keep_index])
            carry = hunk[keep_index:]
        if pre_strings or carry:
            pre_strings.append(carry)
            yield ''.join(pre_strings)


class InputLineSplitter(InputSplitter):
    def __init__(self, in_stream):
        super(InputLineSplitter, self).__init__(in_stream, '\n')

    def __iter__(self):
        for line in super(InputLineSplitter, self).__iter__():
            if line.endswith('\r'):
                line = line[:-1]
            yield line


class InputWordSplitter(object):
    def __init__(self, in_stream):
        self.in_stream = in_stream

    def __iter__(self):
        for line in self.in_stream:
            for word in line.split():
                yield word


class PrefixKey(object):
    def __init__(self, length):
        self.length = length

    def __call__(self, token):
        return token[:self.length]


class SuffixKey(object):
    def __init__(self, length):
        self.length = length

    def __call__(self, token):
        # token[-0:] is the whole token, not an empty suffix.
        if self.length == 0:
            return ''
        return token[-self.length:]


class PatternKey(object):
    """Key tokens by a regular expression match.

    The key is the text of the selected capture group.  By default that's
    the first capture group if the pattern has any, else the whole match.
    `capture` may name a group by number or by name.  Tokens that don't
    match, or where the selected group didn't participate in the match,
    all get the empty key.
    """
    def __init__(self, pattern, capture=None):
        with ExceptionWrapper(UserPatternError(pattern), re.error):
            self.regex = re.compile(pattern)
        if capture is None:
            capture = 1 if self.regex.groups else 0
        elif isinstance(capture, str) and capture.isdigit():
            capture = int(capture)
        if isinstance(capture, int):
            valid = 0 <= capture <= self.regex.groups
        else:
            valid = capture in self.regex.groupindex
        if not valid:
            raise UserArgumentsError("pattern {!r} has no capture group {!r}".
                                     format(pattern, capture))
        self.capture = capture

    def __call__(self, token):
        match = self.regex.search(token)
        if match is None:
            return ''
        return match.group(self.capture) or ''


class ExtensionKey(object):
    def __call__(self, token):
        index = token.rfind('.')
        if index < 1 or index == len(token) - 1:
            return ''
        return token[index + 1:]


class CounterKey(object):
    def __init__(self):
        self.counter = itertools.count()

    def __call__(self, token):
        return str(next(self.counter))


class GroupedCollection(object):
    """Ordered multimap from group keys to the values added under them.

    Keys iterate in the order they were first added.  Values keep the
    order they were added within each key.  There is no removal.
    """
    def __init__(self):
        self._groups = {}
        self._total = 0

    def add(self, key, value):
        try:
            self._groups[key].append(value)
        except KeyError:
            self._groups[key] = [value]
        self._total += 1

    def get(self, key, default=None):
        try:
            return self[key]
        except KeyError:
            return default

    def items(self):
        for key, values in self._groups.items():
            yield key, tuple(values)

    def total(self):
        return self._total

    def __getitem__(self, key):
        return tuple(self._groups[key])

    def __contains__(self, key):
        return key in self._groups

    def __iter__(self):
        return iter(self._groups)

    def __len__(self):
        return len(self._groups)


class Grouper(object):
    def __init__(self, key_func, collection=None):
        self.key_func = key_func
        self.collection = GroupedCollection() if (collection is None) else collection

    def add(self, token_seq):
        for token in token_seq:
            self.collection.add(self.key_func(token), token)
        return self.collection


class GroupCommand(object):
    def __init__(self, command, shell, key_string=None):
        self.template = command
        self.shell = shell
        self.key_string = key_string

    def command(self, group_key):
        command = self.template
        if self.key_string is not None:
            command = command.replace(self.key_string, shlex.quote(group_key))
        return [self.shell, '-c', command]


class GroupOutcome(collections.namedtuple(
        'GroupOutcome', ['key', 'stdout', 'stderr', 'returncode', 'error'])):
    __slots__ = ()

    def success(self):
        return (self.error is None) and (self.returncode == 0)

    def failure_reason(self):
        if self.returncode is None:
            return "could not run command: {}".format(self.error)
        elif self.error is not None:
            return "error writing command input: {}".format(self.error)
        elif self.returncode < 0:
            return "command killed by signal {}".format(-self.returncode)
        elif self.returncode:
            return "command exited with status {}".format(self.returncode)
        return None


class GroupProcess(object):
    Popen = subprocess.Popen
    READ_SIZE = 65536

    def __init__(self, key, cmd, input_seq, sep_bytes, capture_stderr=True):
        self.key = key
        self.input_seq = iter(input_seq)
        self.sep_bytes = sep_bytes
        self.write_buffer = bytearray()
        self.write_error = None
        self.spawn_error = None
        self.write_fd = None
        self.readers = {}
        self.output = {}
        stderr = subprocess.PIPE if capture_stderr else subprocess.DEVNULL
        try:
            self.proc = self.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.PIPE,
                                   stderr=stderr, bufsize=0)
        except EnvironmentError as error:
            self.proc = None
            self.spawn_error = error
            return
        for name in ['stdout', 'stderr']:
            stream = getattr(self.proc, name)
            self.output[name] = bytearray()
            if stream is not None:
                self.readers[stream.fileno()] = (name, stream)
        self.write_fd = self.proc.stdin.fileno()
        if not self._fill_buffer():
            self._close_stdin()

    def _fill_buffer(self):
        try:
            self.write_buffer.extend(next(self.input_seq))
        except StopIteration:
            return False
        else:
            if self.sep_bytes:
                self.write_buffer.extend(self.sep_bytes)
            return True

    def _close_stdin(self):
        self.write_fd = None
        try:
            self.proc.stdin.close()
        except EnvironmentError as error:
            if self.write_error is None:
                self.write_error = error

    def write(self, bytecount):
        while (len(self.write_buffer) < bytecount) and self._fill_buffer():
            pass
        try:
            written = self.proc.stdin.write(bytes(self.write_buffer[:bytecount]))
        except EnvironmentError as error:
            self.write_error = error
        else:
            del self.write_buffer[:written or 0]
        if self.write_error or not (self.write_buffer or self._fill_buffer()):
            self._close_stdin()

    def read(self, fd):
        name, stream = self.readers[fd]
        data = stream.read(self.READ_SIZE)
        if data:
            self.output[name].extend(data)
            return False
        stream.close()
        del self.readers[fd]
        return True

    def read_fds(self):
        return list(self.readers)

    def done_writing(self):
        return self.write_fd is None

    def done_io(self):
        return self.done_writing() and not self.readers

    def exited(self):
        return (self.proc is None) or (self.proc.poll() is not None)

    def outcome(self):
        if self.proc is None:
            return GroupOutcome(self.key, b'', b'', None, self.spawn_error)
        return GroupOutcome(self.key, bytes(self.output['stdout']),
                            bytes(self.output['stderr']), self.proc.wait(),
                            self.write_error)


class ProcessPoller(object):
    Poll = select.poll
    PIPE_BUF = select.PIPE_BUF

    def __init__(self):
        self.procs = {}
        self.poller = self.Poll()
        self._done_procs = []

    def add(self, proc):
        if not proc.done_writing():
            self.poller.register(proc.write_fd, select.POLLOUT)
            self.procs[proc.write_fd] = proc
        for fd in proc.read_fds():
            self.poller.register(fd, select.POLLIN)
            self.procs[fd] = proc
        if proc.done_io():
            self._done_procs.append(proc)

    def poll(self, timeout=None):
        if not (self.procs or timeout):
            return
        for fd, _ in self.poller.poll(timeout):
            proc = self.procs[fd]
            if fd == proc.write_fd:
                proc.write(self.PIPE_BUF)
                finished = proc.done_writing()
            else:
                finished = proc.read(fd)
            if finished:
                self.poller.unregister(fd)
                del self.procs[fd]
                if proc.done_io():
                    self._done_procs.append(proc)

    def done_procs(self):
        done_procs, self._done_procs = self._done_procs, []
        return iter(done_procs)

    def active_count(self):
        return len(set(self.procs.values()))


class CommandDispatcher(object):
    """Run one command per group concurrently and report every outcome.

    Sources are `(key, cmd, input_seq, sep_bytes)` tuples.  Every source
    gets its own process, up to `max_procs` at once (no limit when it's
    None).  A single ProcessPoller multiplexes all their pipes.  run()
    returns after every process has exited and reported a GroupOutcome.
    """
    ProcessPoller = ProcessPoller
    GroupProcess = GroupProcess
    # Milliseconds between exit checks for processes that closed their pipes.
    EXIT_POLL_TIMEOUT = 50

    def __init__(self, max_procs=None, capture_stderr=True, broadcaster=None, trace=None):
        self.max_procs = max_procs or None
        self.capture_stderr = capture_stderr
        self.broadcaster = broadcaster
        self.trace = trace
        self._run_count = 0
        self._failures_count = 0

    def run(self, sources, aggregator):
        sources = iter(sources)
        poller = self.ProcessPoller()
        running = set()
        exiting = []
        while True:
            exhausted = self._start_procs(sources, poller, running)
            exiting.extend(poller.done_procs())
            self._reap_procs(exiting, running, aggregator)
            if exhausted and not running:
                break
            elif exiting:
                poller.poll(self.EXIT_POLL_TIMEOUT)
            elif poller.active_count():
                poller.poll()
        return aggregator

    def _start_procs(self, sources, poller, running):
        while (self.max_procs is None) or (len(running) < self.max_procs):
            try:
                key, cmd, input_seq, sep_bytes = next(sources)
            except StopIteration:
                return True
            if self.trace is not None:
                self.trace("group {!r}: running {}".format(
                    key, ' '.join(shlex.quote(arg) for arg in cmd)))
            proc = self.GroupProcess(key, cmd, input_seq, sep_bytes, self.capture_stderr)
            if (self.broadcaster is not None) and (proc.proc is not None):
                self.broadcaster.add(proc.proc)
            running.add(proc)
            poller.add(proc)
            self._run_count += 1
        return False

    def _reap_procs(self, exiting, running, aggregator):
        for proc in list(exiting):
            if not proc.exited():
                continue
            exiting.remove(proc)
            running.discard(proc)
            if (self.broadcaster is not None) and (proc.proc is not None):
                self.broadcaster.remove(proc.proc)
            outcome = proc.outcome()
            if not outcome.success():
                self._failures_count += 1
            aggregator.report(outcome)

    def run_count(self):
        return self._run_count

    def failures_count(self):
        return self._failures_count


class ResultAggregator(object):
    def __init__(self, keys):
        self.keys = list(keys)
        self._outcomes = {}

    def report(self, outcome):
        if outcome.key in self._outcomes:
            raise ValueError("group {!r} reported twice".format(outcome.key))
        self._outcomes[outcome.key] = outcome

    def complete(self):
        return len(self._outcomes) == len(self.keys)

    def missing(self):
        return [key for key in self.keys if key not in self._outcomes]

    def failures(self):
        return [outcome for outcome in self if not outcome.success()]

    def __iter__(self):
        for key in self.keys:
            try:
                yield self._outcomes[key]
            except KeyError:
                pass


def item_count(values):
    count = len(values)
    return "1 item" if (count == 1) else "{} items".format(count)


def statistics_for(collection):
    group_sizes = sorted(len(values) for _, values in collection.items())
    total_items = sum(group_sizes)
    total_groups = len(group_sizes)
    if group_sizes:
        median = group_sizes[total_groups // 2]
        average = total_items / total_groups
        size_min = group_sizes[0]
        size_max = group_sizes[-1]
    else:
        median = average = size_min = size_max = 0
    return ("Statistics:\n"
            "  Total items: {}\n"
            "  Total groups: {}\n"
            "\n"
            "  Group size:\n"
            "    Median: {}\n"
            "    Average: {:.2f}\n"
            "    Min: {}\n"
            "    Max: {}\n").format(total_items, total_groups, median,
                                   average, size_min, size_max)


class OutputFormatter(object):
    def __init__(self, out_file, err_file=None, separator=b'\n', encoding=ENCODING,
                 only_keys=False, headers=True, stats=False):
        self.out_file = out_file
        self.err_file = err_file
        self.separator = separator
        self.encoding = encoding
        self.only_keys = only_keys
        self.headers = headers
        self.stats = stats

    def _encode(self, s):
        return s.encode(self.encoding)

    def _write_record(self, data):
        self.out_file.write(data)
        self.out_file.write(self.separator)

    def _header(self, key, values):
        if self.only_keys:
            fmt_s = "{} ({})" if self.stats else "{}"
        else:
            fmt_s = "{}: ({})" if self.stats else "{}:"
        return self._encode(fmt_s.format(key, item_count(values)))

    def _start_group(self, index, key, values):
        if self.headers:
            if index:
                # An empty record between groups.
                self.out_file.write(self.separator)
            self._write_record(self._header(key, values))

    def _finish(self, collection):
        if self.stats:
            self.out_file.write(self.separator)
            self.out_file.write(self._encode(statistics_for(collection)))
        self.out_file.flush()

    def write_groups(self, collection):
        for index, (key, values) in enumerate(collection.items()):
            if self.only_keys:
                self._write_record(self._header(key, values))
                continue
            self._start_group(index, key, values)
            for value in values:
                self._write_record(self._encode(value))
        self._finish(collection)

    def write_outcomes(self, collection, outcomes):
        for index, outcome in enumerate(outcomes):
            self._start_group(index, outcome.key, collection[outcome.key])
            self.out_file.write(outcome.stdout)
            if outcome.stdout and not outcome.stdout.endswith(b'\n'):
                self.out_file.write(b'\n')
        self._finish(collection)

    def write_diagnostics(self, outcomes):
        for outcome in outcomes:
            if outcome.stderr:
                self.err_file.write(outcome.stderr)
                if not outcome.stderr.endswith(b'\n'):
                    self.err_file.write(b'\n')
            if not outcome.success():
                self.err_file.write(self._encode("{}: group {!r}: {}\n".format(
                    PROG_NAME, outcome.key, outcome.failure_reason())))
        self.err_file.flush()


class SignalBroadcaster(object):
    IGNORED_ERRNOS = frozenset([errno.ESRCH, errno.EPERM])

    def __init__(self):
        self.procs = set()

    def add(self, proc):
        self.procs.add(proc)

    def remove(self, proc):
        self.procs.discard(proc)

    def send(self, signum, frame):
        for proc in list(self.procs):
            try:
                proc.send_signal(signum)
            except EnvironmentError as error:
                if error.errno not in self.IGNORED_ERRNOS:
                    raise

    def wait(self, signum, frame, waitpid=os.waitpid):
        while True:
            try:
                waitpid(-1, 0)
            except EnvironmentError as error:
                if error.errno == errno.ECHILD:
                    break
                raise


class SignalHandlers(object):
    def __init__(self):
        self.handlers = []

    def add(self, handler):
        self.handlers.append(handler)

    def handle(self, signum, frame):
        for handler in self.handlers:
            handler(signum, frame)

    @staticmethod
    def exit(signum, frame, exit_func=sys.exit):
        exit_func(-signum)


def non_negative_int(arg_s):
    try:
        value = int(arg_s)
    except ValueError:
        value = -1
    if value < 0:
        raise argparse.ArgumentTypeError("{!r} is not a whole number".format(arg_s))
    return value


class VersionAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        print("{} {}".format(parser.prog, VERSION), COPYRIGHT, LICENSE,
              sep="\n\n")
        parser.exit(0)


class ArgumentParser(argparse.ArgumentParser):
    ESCAPES = {'a': '\a', 'b': '\b', 'f': '\f', 'n': '\n',
               'r': '\r', 't': '\t', 'v': '\v', '\\': '\\'}

    def __init__(self):
        super(ArgumentParser, self).__init__(
            prog=PROG_NAME,
            description="Read tokens from standard input and group them by "
            "common substrings.  By default, print the resulting groups.",
        )
        self.add_argument(
            '--version', action=VersionAction, nargs=0,
            help="Display version and license information")
        self.add_argument(
            '--arg-file', '-a', metavar='FILE',
            help="Read tokens from file instead of stdin")
        self.add_argument(
            '--encoding', default=ENCODING,
            help="Encoding for all I/O (specify a name Python uses)")
        self.add_argument(
            '--debug', action='store_true',
            help="Show a traceback when an error occurs")

        split_opts = self.add_argument_group(
            "input-splitting options", "Choose zero or one; the default splits lines")
        split_group = split_opts.add_mutually_exclusive_group()
        split_group.add_argument(
            '--words', '-w', action='store_true',
            help="Group words instead of lines; that is, split input on whitespace")
        split_group.add_argument(
            '--null', '-0',
            dest='split', action='store_const', const=r'\0',
            help="Split input on null characters rather than lines")
        split_group.add_argument(
            '--split', '-d', metavar='DELIM',
            help="Split input on a custom delimiter string")

        key_opts = self.add_argument_group("groupers", "Choose exactly one")
        key_group = key_opts.add_mutually_exclusive_group(required=True)
        key_group.add_argument(
            '--first-chars', '-f', metavar='N', type=non_negative_int,
            help="Group by equivalence on the first N characters")
        key_group.add_argument(
            '--last-chars', '-l', metavar='N', type=non_negative_int,
            help="Group by equivalence on the last N characters")
        key_group.add_argument(
            '--regex', '-r', metavar='PATTERN',
            help="Group by the first match of PATTERN.  If it has capture groups, "
            "group by the first one.  Tokens that don't match go in the blank group")
        key_group.add_argument(
            '--extension', action='store_true',
            help="Group by file extension, without the leading period")
        key_group.add_argument(
            '--counter', action='store_true',
            help="Put each token in its own numbered group, starting from 0")
        key_opts.add_argument(
            '--capture-group', metavar='REF',
            help="With --regex, group by this capture group number or name; "
            "0 is the whole match")

        sep_opts = self.add_argument_group(
            "output separator options", "Choose zero or one; the default is newline")
        sep_group = sep_opts.add_mutually_exclusive_group()
        sep_group.add_argument(
            '--print0', dest='separator', action='store_const', const=b'\0',
            help="Separate output records with a null character")
        sep_group.add_argument(
            '--printspace', dest='separator', action='store_const', const=b' ',
            help="Separate output records with a space")

        out_opts = self.add_argument_group("output options")
        out_opts.add_argument(
            '--only-group-names', '--matches', action='store_true',
            help="Output only group names.  With --run-command, pass each "
            "command its group name instead of the group's contents")
        out_opts.add_argument(
            '--no-headers', action='store_true',
            help="Don't print a header before each group")
        out_opts.add_argument(
            '--stats', action='store_true',
            help="Print item counts and statistics about the groups")

        cmd_opts = self.add_argument_group("command options")
        cmd_opts.add_argument(
            '--run-command', '-c', metavar='CMD',
            help="Run CMD in the shell once per group, passing the group "
            "on stdin, and print each command's output instead of the group")
        cmd_opts.add_argument(
            '--shell', default=os.environ.get('SHELL') or '/bin/sh',
            help="Shell used to run commands (default: $SHELL)")
        cmd_opts.add_argument(
            '--group-str', '-G', metavar='STR',
            help="Replace this string in the command with the quoted group key")
        cmd_opts.add_argument(
            '--max-procs', '-P', metavar='NUM', type=non_negative_int, default=0,
            help="Maximum number of commands to run at once (default: no limit)")
        cmd_opts.add_argument(
            '--sequential', dest='max_procs', action='store_const', const=1,
            help="Run commands one at a time")
        cmd_opts.add_argument(
            '--stderr', choices=['capture', 'discard'], default='capture',
            help="Capture commands' stderr and print it after all output, "
            "or discard it (default: capture)")
        cmd_opts.add_argument(
            '--verbose', '-t', action='store_true',
            help="Write commands to stderr before executing")

    def _parse_escape(self, match):
        groups = match.groups()
        if groups[1]:
            return chr(int(groups[1], 8))
        elif groups[2]:
            return chr(int(groups[2], 16))
        else:
            return self.ESCAPES[groups[0]]

    def _parse_escapes(self, delimiter_s):
        return re.subn(r'\\([abfnrtv\\]|([0-7]{1,3})|x([0-9a-fA-F]{1,2}))',
                       self._parse_escape, delimiter_s)[0]

    def parse_args(self, arglist=None, namespace=None):
        args = super(ArgumentParser, self).parse_args(arglist, namespace)
        if args.split is not None:
            args.split = self._parse_escapes(args.split)
            if not args.split:
                self.error("--split delimiter must not be empty")
        if (args.capture_group is not None) and (args.regex is None):
            self.error("--capture-group can only be used with --regex")
        if args.separator is None:
            args.separator = b'\n'
        return args


class Program(object):
    def __init__(self, args):
        self.args = args

    @classmethod
    def from_arglist(cls, arglist, parser_class=ArgumentParser):
        parser = parser_class()
        return cls(parser.parse_args(arglist))

    def key_function(self, pattern_key=PatternKey):
        args = self.args
        if args.first_chars is not None:
            return PrefixKey(args.first_chars)
        elif args.last_chars is not None:
            return SuffixKey(args.last_chars)
        elif args.regex is not None:
            return pattern_key(args.regex, args.capture_group)
        elif args.extension:
            return ExtensionKey()
        else:
            return CounterKey()

    def input_file(self, open_func=io.open):
        source = sys.stdin.fileno() if (self.args.arg_file is None) else self.args.arg_file
        return open_func(source, encoding=self.args.encoding, newline='',
                         closefd=self.args.arg_file is not None)

    def input_parser(self, input_file, word_splitter=InputWordSplitter,
                     splitter=InputSplitter, line_splitter=InputLineSplitter):
        if self.args.words:
            return word_splitter(input_file)
        elif self.args.split is not None:
            return splitter(input_file, self.args.split)
        else:
            return line_splitter(input_file)

    def group_input(self, key_func, input_seq, new_grouper=Grouper):
        grouper = new_grouper(key_func)
        return grouper.add(input_seq)

    def read_groups(self, key_func):
        with ExceptionWrapper(UserInputError("error reading input"),
                              EnvironmentError, UnicodeError):
            with self.input_file() as input_file:
                return self.group_input(key_func, self.input_parser(input_file))

    def output_file(self, open_func=io.open):
        return open_func(sys.stdout.fileno(), 'wb', closefd=False)

    def error_file(self, open_func=io.open):
        return open_func(sys.stderr.fileno(), 'wb', closefd=False)

    def output_formatter(self, out_file, err_file, formatter_class=OutputFormatter):
        args = self.args
        command_mode = args.run_command is not None
        return formatter_class(
            out_file, err_file,
            separator=b'\n' if command_mode else args.separator,
            encoding=args.encoding,
            only_keys=args.only_group_names and not command_mode,
            headers=not args.no_headers,
            stats=args.stats,
        )

    def tracer(self, err_file):
        encoding = self.args.encoding
        def trace(message):
            err_file.write("{}: {}\n".format(PROG_NAME, message).encode(encoding))
            err_file.flush()
        return trace

    def dispatch_sources(self, collection, group_cmd=GroupCommand):
        args = self.args
        command = group_cmd(args.run_command, args.shell, args.group_str)
        for key, values in collection.items():
            input_seq = [key] if args.only_group_names else values
            yield (key, command.command(key),
                   (value.encode(args.encoding) for value in input_seq),
                   args.separator)

    def install_signal_handlers(self, broadcaster, signal_module=signal):
        handlers = SignalHandlers()
        handlers.add(broadcaster.send)
        handlers.add(broadcaster.wait)
        handlers.add(SignalHandlers.exit)
        for signum in [signal_module.SIGINT, signal_module.SIGTERM]:
            signal_module.signal(signum, handlers.handle)
        return handlers

    def run_commands(self, collection, trace=None, dispatcher_class=CommandDispatcher,
                     aggregator_class=ResultAggregator, signal_module=signal):
        broadcaster = SignalBroadcaster()
        self.install_signal_handlers(broadcaster, signal_module)
        dispatcher = dispatcher_class(self.args.max_procs,
                                      self.args.stderr == 'capture',
                                      broadcaster, trace)
        return dispatcher.run(self.dispatch_sources(collection), aggregator_class(collection))

    @staticmethod
    def exitcode(failures_count):
        if not failures_count:
            return 0
        return min(10 + failures_count, 99)

    def main(self):
        key_func = self.key_function()
        collection = self.read_groups(key_func)
        out_file = self.output_file()
        err_file = self.error_file()
        formatter = self.output_formatter(out_file, err_file)
        if self.args.run_command is None:
            formatter.write_groups(collection)
            return 0
        trace = self.tracer(err_file) if self.args.verbose else None
        aggregator = self.run_commands(collection, trace)
        formatter.write_outcomes(collection, aggregator)
        formatter.write_diagnostics(aggregator)
        return self.exitcode(len(aggregator.failures()) + len(aggregator.missing()))


def main(arglist, program_class=Program, excepthook=ExceptHook):
    program = program_class.from_arglist(arglist)
    hook = excepthook.with_sys_stderr(program.args.encoding)
    hook.show_tb = program.args.debug
    sys.excepthook = hook
    return program.main()


def script_main():
    try:
        exitcode = main(sys.argv[1:])
    except (Exception, KeyboardInterrupt):
        if sys.excepthook is sys.__excepthook__:
            raise
        sys.excepthook(*sys.exc_info())
        raise
    sys.exit(exitcode)

if __name__ == '__main__':
    script_main()
