"""
Run one external tool for one build node and write its output.
  process:   glslangValidator -E <src>            -> <target>/gl3/*.glsl
  compile:   glslangValidator -G<ver> -o <spv> <src> -> build/metal/*.spv
  translate: spirv-cross --msl <spv>              -> <target>/metal/*.glsl.metal

Text outputs get a header and have #version / #line lines stripped.
Outputs are written to a temp file and renamed; on failure nothing new is left behind.

Requires: glslangValidator and spirv-cross on PATH or in ./tools/.
"""
import os
import re
import shutil
import subprocess
import tempfile
import threading

from shader_errors import ConfigurationError, OutputError, ToolInvocationError
from shader_graph import COMPILE, PROCESS, TRANSLATE
from shader_manifest import ROOT

GLSL_VERSION_HEADER = '#version {{version}}'

GLSLANG_FLAGS = ['--auto-map-locations']
GLSLANG_FLAGS_METAL = GLSLANG_FLAGS + ['-DPF_ORIGIN_UPPER_LEFT=1']
SPIRVCROSS_FLAGS = ['--msl', '--msl-version', '020100', '--msl-argument-buffers']

STRIP_PATTERNS = [
    re.compile(r'^\s*#version\b'),
    re.compile(r'^\s*#line\b'),
]


def find_tool(name):
    """Resolve a tool name or path; falls back to ./tools/<name>."""
    found = shutil.which(name)
    if found:
        return found
    for candidate in (name, name + '.exe'):
        path = os.path.join(ROOT, 'tools', candidate)
        if os.path.isfile(path):
            return path
    return None


def strip_lines(text):
    """Drop version pragmas and source-line markers from tool output."""
    lines = text.split('\n')
    if lines[-1] == '':
        lines.pop()
    kept = [line for line in lines if not any(p.match(line.rstrip('\r')) for p in STRIP_PATTERNS)]
    return '\n'.join(kept) + '\n' if kept else ''


def header_for(node, config):
    if node.kind == PROCESS:
        return [GLSL_VERSION_HEADER, config.banner]
    return [config.banner]


def remove_quietly(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def ensure_dir(path):
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise OutputError('Cannot create directory %s: %s' % (path, e), path) from e


class TransformRunner:
    """Runs build nodes; safe to share between worker threads."""

    def __init__(self, config):
        self.config = config
        self._tools = {}
        self._procs = set()
        self._lock = threading.Lock()
        self._cancelled = False

    def tool(self, name):
        with self._lock:
            if name not in self._tools:
                self._tools[name] = find_tool(name)
            path = self._tools[name]
        if path is None:
            raise ToolInvocationError('Tool not found: %s' % name, name)
        return path

    def command(self, node, out_path=None):
        cfg = self.config
        includes = ['-I' + d for d in cfg.include_paths]
        stage = node.unit.stage.glslang_name
        if node.kind == PROCESS:
            return [self.tool(cfg.glslang)] + GLSLANG_FLAGS + includes + ['-S', stage, '-E', node.source]
        if node.kind == COMPILE:
            return ([self.tool(cfg.glslang)] + GLSLANG_FLAGS_METAL + includes +
                    ['-G%d' % cfg.glsl_version, '-S', stage, '-o', out_path, node.source])
        if node.kind == TRANSLATE:
            return [self.tool(cfg.spirv_cross)] + SPIRVCROSS_FLAGS + [node.source]
        raise ConfigurationError('Unknown transform %r' % node.kind, node.output)

    def invoke(self, cmd, path):
        """Run cmd to completion; returns stdout or raises ToolInvocationError."""
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                    cwd=self.config.source_dir)
        except OSError as e:
            raise ToolInvocationError('Cannot run %s: %s' % (cmd[0], e), path) from e
        with self._lock:
            if self._cancelled:
                proc.kill()
            self._procs.add(proc)
        try:
            stdout, stderr = proc.communicate()
        finally:
            with self._lock:
                self._procs.discard(proc)
        tool = os.path.basename(cmd[0])
        stderr = stderr.decode('utf-8', errors='replace')
        if proc.returncode != 0:
            raise ToolInvocationError('%s exited with code %d' % (tool, proc.returncode),
                                      path, proc.returncode, stderr)
        try:
            return stdout.decode('utf-8').replace('\r\n', '\n')
        except UnicodeDecodeError as e:
            raise ToolInvocationError('%s wrote output that is not UTF-8: %s' % (tool, e),
                                      path, proc.returncode, stderr) from e

    def terminate_all(self):
        """Stop in-flight tools; their workers clean up the partial files."""
        with self._lock:
            self._cancelled = True
            procs = list(self._procs)
        for proc in procs:
            proc.terminate()

    def run(self, node):
        """Build node.output. Any failure removes the temp file and the stale output."""
        out_dir = os.path.dirname(node.output)
        ensure_dir(out_dir)
        try:
            fd, tmp = tempfile.mkstemp(prefix='.' + os.path.basename(node.output) + '.', suffix='.tmp', dir=out_dir)
            os.close(fd)
        except OSError as e:
            raise OutputError('Cannot write %s: %s' % (node.output, e), node.output) from e
        try:
            if node.kind == COMPILE:
                self.invoke(self.command(node, tmp), node.source)
            else:
                text = self.invoke(self.command(node), node.source)
                with open(tmp, 'w', encoding='utf-8', newline='\n') as f:
                    f.write('\n'.join(header_for(node, self.config)) + '\n')
                    f.write(strip_lines(text))
            # mkstemp files are 0600
            os.chmod(tmp, 0o644)
            os.replace(tmp, node.output)
        except OSError as e:
            remove_quietly(tmp)
            remove_quietly(node.output)
            raise OutputError('Cannot write %s: %s' % (node.output, e), node.output) from e
        except BaseException:
            remove_quietly(tmp)
            remove_quietly(node.output)
            raise
