"""
Shader manifest and build configuration.
Lists the shader units (fragment/vertex sources) and the shared include files,
plus the defaults every build step reads: target dir, GLSL version, tools.

Defaults can be overridden from the environment (TARGET_DIR, GLSL_VERSION,
GLSLANG, SPIRVCROSS) or from the build_shaders.py command line.
"""
import enum
import os
from dataclasses import dataclass, field

from shader_errors import ConfigurationError

ROOT = os.path.dirname(os.path.abspath(__file__)) or '.'

SHADERS = [
    'debug_solid.fs.glsl',
    'debug_solid.vs.glsl',
    'debug_texture.fs.glsl',
    'debug_texture.vs.glsl',
    'demo_ground.fs.glsl',
    'demo_ground.vs.glsl',
    'fill.fs.glsl',
    'fill.vs.glsl',
    'mask.vs.glsl',
    'mask_evenodd.fs.glsl',
    'mask_winding.fs.glsl',
    'filter.vs.glsl',
    'filter_basic.fs.glsl',
    'filter_text.fs.glsl',
    'reproject.fs.glsl',
    'reproject.vs.glsl',
    'stencil.fs.glsl',
    'stencil.vs.glsl',
    'tile_alpha.fs.glsl',
    'tile_alpha.vs.glsl',
    'tile_solid.fs.glsl',
    'tile_solid.vs.glsl',
]

INCLUDES = [
    'filter_text_convolve.inc.glsl',
    'filter_text_gamma_correct.inc.glsl',
]

DEFAULT_TARGET_DIR = os.path.join('..', 'resources', 'shaders')
DEFAULT_BUILD_DIR = 'build'
DEFAULT_GLSL_VERSION = 330
DEFAULT_BANNER = '// Automatically generated from files in pathfinder/shaders/. Do not edit!'


class Stage(enum.Enum):
    FRAGMENT = ('.fs.glsl', 'frag')
    VERTEX = ('.vs.glsl', 'vert')

    def __init__(self, suffix, glslang_name):
        self.suffix = suffix
        self.glslang_name = glslang_name


def stage_from_name(name):
    """fill.fs.glsl -> Stage.FRAGMENT"""
    for stage in Stage:
        if name.endswith(stage.suffix) and len(name) > len(stage.suffix):
            return stage
    raise ConfigurationError('Unrecognized shader suffix: %s' % name, name)


@dataclass(frozen=True)
class ShaderUnit:
    name: str
    stage: Stage

    @classmethod
    def from_name(cls, name):
        return cls(name, stage_from_name(name))


@dataclass(frozen=True)
class IncludeFile:
    name: str


@dataclass(frozen=True)
class Manifest:
    units: tuple
    includes: tuple

    @classmethod
    def from_names(cls, shaders, includes=()):
        seen = set()
        for name in shaders:
            if name in seen:
                raise ConfigurationError('Duplicate manifest entry: %s' % name, name)
            seen.add(name)
        return cls(tuple(ShaderUnit.from_name(n) for n in shaders),
                   tuple(IncludeFile(n) for n in includes))

    def unit(self, name):
        """Look a shader up by file name; names outside the manifest are a configuration error."""
        for unit in self.units:
            if unit.name == name:
                return unit
        raise ConfigurationError('Not in manifest: %s' % name, name)

    def only(self, names):
        """A manifest restricted to the named shaders, keeping every include."""
        return Manifest(tuple(self.unit(n) for n in names), self.includes)


DEFAULT_MANIFEST = Manifest.from_names(SHADERS, INCLUDES)


@dataclass
class BuildConfig:
    """Everything a build invocation needs besides the manifest.

    Relative target/build/include paths are taken relative to source_dir,
    the same way the shader Makefile ran from the shaders folder.
    """
    source_dir: str = ROOT
    target_dir: str = DEFAULT_TARGET_DIR
    build_dir: str = DEFAULT_BUILD_DIR
    glsl_version: int = DEFAULT_GLSL_VERSION
    include_dirs: list = field(default_factory=list)
    glslang: str = 'glslangValidator'
    spirv_cross: str = 'spirv-cross'
    banner: str = DEFAULT_BANNER
    jobs: int = None
    force: bool = False

    @classmethod
    def from_env(cls, environ=None, **overrides):
        """Defaults, then environment variables, then explicit overrides (None is ignored)."""
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get('TARGET_DIR'):
            values['target_dir'] = environ['TARGET_DIR']
        if environ.get('GLSL_VERSION'):
            try:
                values['glsl_version'] = int(environ['GLSL_VERSION'])
            except ValueError:
                raise ConfigurationError('GLSL_VERSION must be an integer, got %r' % environ['GLSL_VERSION'])
        if environ.get('GLSLANG'):
            values['glslang'] = environ['GLSLANG']
        if environ.get('SPIRVCROSS'):
            values['spirv_cross'] = environ['SPIRVCROSS']
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def path(self, p):
        return os.path.normpath(os.path.join(self.source_dir, p))

    @property
    def target_root(self):
        return self.path(self.target_dir)

    @property
    def build_root(self):
        return self.path(self.build_dir)

    @property
    def include_paths(self):
        """Include search path; the source dir itself when none is given (-I.)."""
        return [self.path(d) for d in self.include_dirs] or [self.path('.')]
