"""Discover and classify the projects of a workspace.

The workspace manifest is a JSON file (``global.json`` by default) whose
``projects`` list names the directories that hold projects. A directory that
contains a project file is a project; otherwise each immediate sub-directory
containing a project file is one. Project files are read for their package and
project references, which also drive classification into libraries,
applications and test projects.
"""

from __future__ import annotations

import enum
import fnmatch
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from buildtree.logging import Logger

PROJECT_FILE_PATTERNS = ("*.csproj", "*.fsproj", "*.vbproj")

# Package name prefixes that mark a test project
TEST_PACKAGE_PREFIXES = ("microsoft.net.test.sdk", "xunit", "nunit", "mstest")

TEST_NAME_SUFFIXES = (".Tests", ".Test")


class ManifestError(Exception):
    """Raised when the workspace manifest or a project file is invalid."""

    pass


class ProjectCategory(enum.Enum):
    LIBRARY = "library"
    APP = "app"
    TEST = "test"


@dataclass(frozen=True)
class PackageReference:
    name: str
    version: str = ""


@dataclass
class Project:
    """A project discovered in the workspace."""

    name: str
    path: Path
    project_file: Path
    category: ProjectCategory
    packable: bool = True
    version: str = ""
    package_references: list[PackageReference] = field(default_factory=list)
    project_references: list[str] = field(default_factory=list)


@dataclass
class Workspace:
    """All projects of a workspace plus the shared artifacts location."""

    root: Path
    projects: list[Project] = field(default_factory=list)
    artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))

    def get(self, name: str) -> Project | None:
        return next((p for p in self.projects if p.name == name), None)

    def by_category(self) -> dict[ProjectCategory, list[Project]]:
        grouped: dict[ProjectCategory, list[Project]] = {c: [] for c in ProjectCategory}
        for project in self.projects:
            grouped[project.category].append(project)
        return grouped

    def select(
        self,
        categories: Optional[Iterable[ProjectCategory]] = None,
        patterns: Optional[Iterable[str]] = None,
    ) -> list[Project]:
        """Projects in any of ``categories`` whose name matches any glob in ``patterns``.

        ``None`` (or an empty list of patterns) means no restriction.
        """
        wanted = set(categories) if categories is not None else None
        patterns = list(patterns or [])
        return [
            p
            for p in self.projects
            if (wanted is None or p.category in wanted)
            and (not patterns or any(fnmatch.fnmatchcase(p.name, pat) for pat in patterns))
        ]


def _local_name(tag: str) -> str:
    # Legacy MSBuild files put every element in a namespace
    return tag.rsplit("}", 1)[-1]


def _find_project_file(directory: Path) -> Path | None:
    matches = sorted(
        match for pattern in PROJECT_FILE_PATTERNS for match in directory.glob(pattern)
    )
    if len(matches) > 1:
        raise ManifestError(
            f"Directory '{directory}' contains more than one project file: "
            f"{', '.join(m.name for m in matches)}"
        )
    return matches[0] if matches else None


def _package_version(element: ET.Element) -> str:
    version = element.get("Version")
    if version is not None:
        return version
    child = next((c for c in element if _local_name(c.tag) == "Version"), None)
    return (child.text or "").strip() if child is not None else ""


def read_project(project_file: Path) -> Project:
    """Read one project file and classify it.

    Raises:
        ManifestError: If the file is not well-formed XML
    """
    try:
        root = ET.parse(project_file).getroot()
    except (ET.ParseError, OSError) as e:
        raise ManifestError(f"Cannot read project file '{project_file}': {e}") from e

    properties: dict[str, str] = {}
    package_references: list[PackageReference] = []
    project_references: list[str] = []

    # Properties live in PropertyGroup, references in ItemGroup; a nested
    # <Version> under a PackageReference is the dependency's version
    for group in root:
        group_tag = _local_name(group.tag)
        for element in group:
            tag = _local_name(element.tag)
            if group_tag == "PropertyGroup":
                if tag in ("OutputType", "IsPackable", "IsTestProject", "Version", "VersionPrefix"):
                    properties[tag] = (element.text or "").strip()
            elif group_tag != "ItemGroup" or not element.get("Include"):
                continue
            elif tag == "PackageReference":
                package_references.append(
                    PackageReference(element.get("Include"), _package_version(element))
                )
            elif tag == "ProjectReference":
                reference = element.get("Include").replace("\\", "/")
                project_references.append(Path(reference).stem)

    name = project_file.stem
    category = _classify(name, properties, package_references)
    packable = (
        category is not ProjectCategory.TEST
        and properties.get("IsPackable", "true").lower() != "false"
    )

    return Project(
        name=name,
        path=project_file.parent,
        project_file=project_file,
        category=category,
        packable=packable,
        version=properties.get("Version") or properties.get("VersionPrefix", ""),
        package_references=package_references,
        project_references=project_references,
    )


def _classify(
    name: str, properties: dict[str, str], package_references: list[PackageReference]
) -> ProjectCategory:
    if properties.get("IsTestProject", "").lower() == "true":
        return ProjectCategory.TEST
    if any(ref.name.lower().startswith(TEST_PACKAGE_PREFIXES) for ref in package_references):
        return ProjectCategory.TEST
    if name.endswith(TEST_NAME_SUFFIXES):
        return ProjectCategory.TEST
    if properties.get("OutputType", "").lower() in ("exe", "winexe"):
        return ProjectCategory.APP
    return ProjectCategory.LIBRARY


def read_manifest(manifest_path: Path) -> list[str]:
    """Return the project directories listed in a workspace manifest.

    Raises:
        ManifestError: If the manifest is missing or malformed
    """
    if not manifest_path.exists():
        raise ManifestError(f"Workspace manifest not found: {manifest_path}")

    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"Invalid JSON in workspace manifest '{manifest_path}': {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Workspace manifest '{manifest_path}' must be a JSON object")

    roots = data.get("projects")
    if not isinstance(roots, list) or not all(isinstance(r, str) for r in roots):
        raise ManifestError(
            f"Workspace manifest '{manifest_path}' needs a 'projects' list of directories"
        )
    return roots


def discover_projects(root: Path, project_dirs: list[str], logger: Optional[Logger] = None) -> list[Project]:
    """Scan each listed directory for projects, sorted by name.

    Raises:
        ManifestError: If a listed directory is missing or names collide
    """
    projects: dict[str, Project] = {}

    for entry in project_dirs:
        directory = (root / entry).resolve()
        if not directory.is_dir():
            raise ManifestError(f"Project directory listed in manifest does not exist: {entry}")

        own_file = _find_project_file(directory)
        if own_file is not None:
            candidates = [own_file]
        else:
            candidates = []
            for child in sorted(directory.iterdir()):
                if not child.is_dir():
                    continue
                project_file = _find_project_file(child)
                if project_file is not None:
                    candidates.append(project_file)

        if not candidates and logger:
            logger.warn(f"[yellow]No projects found under {entry}[/yellow]")

        for project_file in candidates:
            project = read_project(project_file)
            if project.name in projects:
                raise ManifestError(
                    f"Project name '{project.name}' appears twice: "
                    f"{projects[project.name].project_file} and {project_file}"
                )
            if logger:
                logger.trace(f"Discovered {project.category.value} project {project.name}")
            projects[project.name] = project

    return sorted(projects.values(), key=lambda p: p.name)


def load_workspace(
    root: Path,
    manifest: str,
    project_dirs: list[str],
    artifacts_dir: str,
    logger: Optional[Logger] = None,
) -> Workspace:
    """Build the Workspace for a project root.

    Inline ``project_dirs`` take precedence over the manifest file.
    """
    if not project_dirs:
        project_dirs = read_manifest(root / manifest)

    artifacts = Path(artifacts_dir)
    if not artifacts.is_absolute():
        artifacts = root / artifacts

    return Workspace(
        root=root,
        projects=discover_projects(root, project_dirs, logger),
        artifacts_dir=artifacts,
    )
