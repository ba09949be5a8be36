import os
import stat
import sys
import textwrap

import pytest

from shader_manifest import BuildConfig, Manifest

FAKE_GLSLANG = '''
import sys
args = sys.argv[1:]
with open(LOG, 'a') as f:
    f.write('glslang ' + ' '.join(args) + '\\n')
src = args[-1]
with open(src) as f:
    text = f.read()
if 'BROKEN' in text:
    if '-o' in args:
        with open(args[args.index('-o') + 1], 'w') as f:
            f.write('partial')
    sys.stderr.write('ERROR: %s:1: syntax error\\n' % src)
    sys.exit(1)
if '-E' in args:
    sys.stdout.write('#version 330\\n#line 1 "%s"\\n%s#line 20\\n' % (src, text))
else:
    with open(args[args.index('-o') + 1], 'w') as f:
        f.write('SPV:' + text)
'''

FAKE_SPIRV_CROSS = '''
import sys
with open(LOG, 'a') as f:
    f.write('spirv-cross ' + ' '.join(sys.argv[1:]) + '\\n')
with open(sys.argv[-1]) as f:
    text = f.read()
sys.stdout.write('#include <metal_stdlib>\\n#line 3\\n' + text + '\\n')
'''

SOURCES = {
    'fill.fs.glsl': 'void main() { fill(); }\n',
    'fill.vs.glsl': 'void main() { gl_Position = vec4(0.0); }\n',
    'mask.vs.glsl': 'void main() { mask(); }\n',
}

INCLUDES = {
    'filter_text_convolve.inc.glsl': 'vec4 convolve();\n',
    'filter_text_gamma_correct.inc.glsl': 'vec3 gamma();\n',
}


def write_tool(path, body, log):
    with open(path, 'w') as f:
        f.write('#!%s\n' % sys.executable)
        f.write('LOG = %r\n' % str(log))
        f.write(textwrap.dedent(body))
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


class ShaderTree:
    def __init__(self, root):
        self.src = root / 'shaders'
        self.src.mkdir()
        self.log = root / 'tools.log'
        self.log.write_text('')
        tools = root / 'bin'
        tools.mkdir()
        self.glslang = write_tool(tools / 'glslangValidator', FAKE_GLSLANG, self.log)
        self.spirv_cross = write_tool(tools / 'spirv-cross', FAKE_SPIRV_CROSS, self.log)
        for name, text in list(SOURCES.items()) + list(INCLUDES.items()):
            (self.src / name).write_text(text)
        self.manifest = Manifest.from_names(list(SOURCES), list(INCLUDES))

    def config(self, **kwargs):
        kwargs.setdefault('jobs', 2)
        kwargs.setdefault('glslang', self.glslang)
        kwargs.setdefault('spirv_cross', self.spirv_cross)
        return BuildConfig(source_dir=str(self.src), target_dir='out', **kwargs)

    def invocations(self):
        return [line for line in self.log.read_text().splitlines() if line]

    def reset_log(self):
        self.log.write_text('')

    def tool(self, name, body):
        """Write an extra fake tool next to the default ones."""
        return write_tool(self.src.parent / 'bin' / name, body, self.log)

    def argv(self, *extra):
        return ['--source-dir', str(self.src), '--target-dir', 'out',
                '--glslang', self.glslang, '--spirv-cross', self.spirv_cross, '-j', '2'] + list(extra)


@pytest.fixture
def tree(tmp_path):
    return ShaderTree(tmp_path)
