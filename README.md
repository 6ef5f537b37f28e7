# agix

Agent Graph IndeX: the building blocks of a package manager for AI CLI
tools. It reads and writes `Agentfile` manifests and fetches packages
from four kinds of source.

## Installing

```
pip install .
pip install ".[test]"   # adds pytest and responses for the test suite
```

Python 3.11 or later is required.

## Sources

A source is written as `<scheme>:<value>` and parsed with
`agix.sources.registry.parse_source`:

| Scheme        | Example                                   | Suggested name  |
|---------------|-------------------------------------------|-----------------|
| `local`       | `local:../my-tool`                        | `my-tool`       |
| `github`      | `github:org/repo@v1.0`                    | `repo`          |
| `git`         | `git:https://example.com/repo.git@main`   | `repo`          |
| `marketplace` | `marketplace:org/plugins@roundtable`      | `roundtable`    |

```python
from agix.sources.registry import parse_source, scheme_names

source = parse_source("github:org/repo@main")
print(source.canonical())        # github:org/repo@main
print(source.suggested_name())   # repo
print(scheme_names())            # ['local', 'github', 'git', 'marketplace']
```

A string with no scheme, an unknown scheme, a `github:` value without
`org/repo`, or a `marketplace:` value without `@<plugin>` raises
`agix.sources.base.InvalidSourceError` (a subclass of `AgixError`).
Two sources compare equal when their canonical forms are equal, and the
canonical form parses back to an equal source.

Every source has `fetch(dest)`:

- `LocalSource` copies the directory into `dest` and returns a `Fetched`
  record whose `content_hash` is a BLAKE2b digest of every file and its
  relative path (`agix.sources.local.hash_dir`).
- `GitHubSource` resolves its ref to a commit SHA (a full 40-character SHA
  is used as is; otherwise a tag, then a branch, then the default branch's
  HEAD), downloads the archive for that SHA, unpacks it without GitHub's
  top-level directory and returns `Fetched` with `sha` set. Requests go to
  the public GitHub hosts unless the `base` argument or the
  `AGIX_GITHUB_BASE_URL` environment variable names another server, which
  then receives both API calls and archive downloads.
- `GitSource` checks out a commit into `dest` using a built-in git reader,
  with no `git` executable needed. It reads local repositories (plain paths
  or `file://` URLs) directly and talks to `http://` and `https://` remotes
  over the smart HTTP protocol. `resolve_ref()` lists the remote's refs
  without fetching anything.
- `MarketplaceSource` fetches nothing and returns `DelegateToDriver`,
  since a CLI's own plugin system installs it; `as_marketplace()` returns
  `(marketplace, plugin)`.

`LocalSource.local_path()` returns its directory; the other sources
return `None`. `agix.sources.git.detect_git_support()` reports the built-in
reader's version and whether a `git` executable is on `PATH`.

## Manifests

```toml
[agix]
cli = ["claude", "codex"]

[dependencies]
rtk = { source = "github:org/rtk", exclude = ["codex"] }

[claude.dependencies]
superpowers = { source = "github:org/superpowers", version = "^2.0" }
```

```python
from agix.manifest import Dependency, ProjectManifest

manifest = ProjectManifest.from_file("Agentfile")
print(manifest.agix.cli)
print(manifest.dependencies["rtk"].exclude)
print(manifest.cli_dependencies["claude"]["superpowers"].version)

manifest.dependencies["later"] = Dependency.from_source_str("github:org/later")
manifest.to_file("Agentfile")
```

`ProjectManifest.from_toml_string` parses text directly, `empty(cli)`
builds a new manifest, and `single_dep_scoped(name, dep, cli_filter)`
builds a manifest holding only one dependency, shared when `cli_filter`
is empty and otherwise placed under each listed CLI's section.

A dependency with no `version` and no `exclude` is written as a plain
string; otherwise it is written as a table. `to_toml_string()` writes the
`[agix]` section, then `[dependencies]`, then one `[<cli>.dependencies]`
section per CLI, leaving out empty ones.

`PackageManifest` reads a package's Agentfile, including `[hooks]` with
`post-install` and `pre-uninstall` entries; its `from_file` returns `None`
when the file does not exist. Malformed TOML, a missing `[agix]` section,
unknown dependency fields or unparseable sources raise
`agix.manifest.ManifestError`.

## Output and interaction

`agix.ui` has `success`, `info` (stdout) and `warn` (stderr) for status
lines, and `scope_header(agentfile, is_global)`, which prints the manifest
in use to stderr only when stderr is a terminal.
`is_non_interactive(non_interactive)` reports whether prompts must be
skipped: when asked to, when `AGIX_NO_INTERACTIVE` is set to a non-empty
value, or when standard error is not a terminal.

## What this package does not do

It is a library only. It has no command-line program, no lock file, no
installation of fetched files into a CLI's configuration directories, no
running of package hooks, no driver that calls a CLI's plugin system for
marketplace sources, and no interactive menu for choosing CLIs. Git
remotes over SSH or the `git://` protocol are not supported, and
submodules are checked out as empty directories.