#!/usr/bin/env python3
"""
Build GL3 and Metal shaders from the GLSL sources in this folder.
1. glslangValidator -E each shader -> <target>/gl3/*.glsl
2. glslangValidator each shader -> build/metal/*.spv
3. spirv-cross each .spv -> <target>/metal/*.glsl.metal (after step 2 for that shader)

Usage: python build_shaders.py [all|clean|list] [-j N] [--force] [--target-dir DIR]
Only outputs older than their inputs are rebuilt; touching an include rebuilds everything.
A failing shader does not stop the others; the exit code is 1 if anything failed.
"""
import argparse
import os
import sys
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from shader_errors import ShaderBuildError, ToolInvocationError
from shader_graph import build_graph, check_inputs, dependants, dependencies, is_stale, topological_order
from shader_manifest import DEFAULT_MANIFEST, BuildConfig
from shader_transform import TransformRunner, remove_quietly

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

BUILT = 'built'
UP_TO_DATE = 'up-to-date'


@dataclass
class BuildResult:
    built: list = field(default_factory=list)
    up_to_date: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)
    skipped: list = field(default_factory=list)

    @property
    def ok(self):
        return not self.failed and not self.skipped


def report_failure(output, error, err):
    print('FAILED %s: %s' % (error.path or output, error), file=err)
    if isinstance(error, ToolInvocationError) and error.stderr:
        err.write(error.stderr if error.stderr.endswith('\n') else error.stderr + '\n')


def run_build(graph, runner, jobs=None, force=False, quiet=False, out=None, err=None):
    """Run every stale node, each as soon as the nodes it reads from are done."""
    out = out or sys.stdout
    err = err or sys.stderr
    result = BuildResult()
    order = topological_order(graph)
    rev = dependants(graph)
    waiting = {o: len(dependencies(graph, graph[o])) for o in order}

    def step(node):
        check_inputs(node, graph)
        if not force and not is_stale(node, graph):
            return UP_TO_DATE
        if not quiet:
            print('Build:', os.path.relpath(node.source), '->', os.path.relpath(node.output), file=out)
        runner.run(node)
        return BUILT

    def skip(o):
        for d in rev[o]:
            if d not in result.skipped:
                result.skipped.append(d)
                print('Skip (dependency failed):', d, file=err)
                skip(d)

    pool = ThreadPoolExecutor(max_workers=jobs or os.cpu_count())
    futures = {}
    try:
        for o in order:
            if waiting[o] == 0:
                futures[pool.submit(step, graph[o])] = o
        while futures:
            done, _ = wait(futures, return_when=FIRST_COMPLETED)
            for f in done:
                o = futures.pop(f)
                try:
                    status = f.result()
                except ShaderBuildError as e:
                    result.failed[o] = e
                    report_failure(o, e, err)
                    skip(o)
                    continue
                (result.built if status == BUILT else result.up_to_date).append(o)
                for d in rev[o]:
                    waiting[d] -= 1
                    if waiting[d] == 0 and d not in result.skipped:
                        futures[pool.submit(step, graph[d])] = d
    except BaseException:
        # Ctrl-C or an unexpected error: stop live tools, drop queued work
        runner.terminate_all()
        pool.shutdown(wait=True, cancel_futures=True)
        raise
    finally:
        pool.shutdown(wait=True)
    return result


def clean(graph, quiet=False, out=None):
    """Delete every computed output; missing files are fine."""
    out = out or sys.stdout
    removed = []
    for o in topological_order(graph):
        if os.path.isfile(o):
            remove_quietly(o)
            removed.append(o)
            if not quiet:
                print('Removed:', o, file=out)
    return removed


def list_nodes(graph, out=None):
    out = out or sys.stdout
    for o in topological_order(graph):
        print(o, '<-', ' '.join(graph[o].inputs), file=out)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Build GL3 and Metal shaders from GLSL sources.')
    parser.add_argument('action', nargs='?', default='all', choices=['all', 'clean', 'list'],
                        help='all: build stale outputs (default); clean: delete outputs; list: show the build graph.')
    parser.add_argument('--source-dir', help='Folder holding the shader sources (default: this folder).')
    parser.add_argument('--target-dir', help='Output folder, relative to the source folder (default: ../resources/shaders).')
    parser.add_argument('--build-dir', help='Folder for intermediate .spv files (default: build).')
    parser.add_argument('--glsl-version', type=int, help='GLSL version passed to glslangValidator -G (default: 330).')
    parser.add_argument('-I', '--include-dir', action='append', dest='include_dirs', metavar='DIR',
                        help='Include search path; may be repeated (default: the source folder).')
    parser.add_argument('--glslang', help='glslangValidator executable.')
    parser.add_argument('--spirv-cross', help='spirv-cross executable.')
    parser.add_argument('-j', '--jobs', type=int, help='Parallel tool invocations (default: CPU count).')
    parser.add_argument('-f', '--force', action='store_true', help='Rebuild even if outputs are up to date.')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only print errors.')
    parser.add_argument('--only', action='append', metavar='SHADER',
                        help='Restrict the action to this manifest entry, e.g. fill.fs.glsl; may be repeated.')
    return parser.parse_args(argv)


def main(argv=None, manifest=DEFAULT_MANIFEST, environ=None):
    args = parse_args(argv)
    try:
        config = BuildConfig.from_env(
            environ,
            source_dir=os.path.abspath(args.source_dir) if args.source_dir else None,
            target_dir=args.target_dir,
            build_dir=args.build_dir,
            glsl_version=args.glsl_version,
            include_dirs=args.include_dirs,
            glslang=args.glslang,
            spirv_cross=args.spirv_cross,
            jobs=args.jobs,
            force=args.force or None,
        )
        if args.only:
            manifest = manifest.only(args.only)
        graph = build_graph(manifest, config)
    except ShaderBuildError as e:
        print('Error:', e, file=sys.stderr)
        return EXIT_FAILED

    if args.action == 'clean':
        removed = clean(graph, quiet=args.quiet)
        if not args.quiet:
            print('Removed %d file(s).' % len(removed))
        return EXIT_OK
    if args.action == 'list':
        list_nodes(graph)
        return EXIT_OK

    runner = TransformRunner(config)
    try:
        result = run_build(graph, runner, jobs=config.jobs, force=config.force, quiet=args.quiet)
    except KeyboardInterrupt:
        print('\nInterrupted; partial outputs removed.', file=sys.stderr)
        return EXIT_INTERRUPTED
    except ShaderBuildError as e:
        print('Error:', e, file=sys.stderr)
        return EXIT_FAILED

    if not args.quiet or not result.ok:
        print('Built %d, up to date %d, failed %d, skipped %d.' % (
            len(result.built), len(result.up_to_date), len(result.failed), len(result.skipped)),
            file=sys.stdout if result.ok else sys.stderr)
    return EXIT_OK if result.ok else EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
