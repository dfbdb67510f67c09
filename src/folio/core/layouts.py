"""Layout loading, validation, chain resolution, and composition"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from jinja2 import Environment, Template, TemplateSyntaxError, meta

from folio.core.errors import (
    BuildError,
    BuildFailed,
    LayoutChainTooDeep,
    LayoutCycle,
    MalformedLayout,
    MissingSlot,
    UnknownLayout,
)
from folio.core.frontmatter import split_frontmatter
from folio.core.models import Layout


logger = logging.getLogger(__name__)

CONTENT_SLOT = "content"
LAYOUT_EXTENSION = ".html"


def _make_env() -> Environment:
    return Environment(autoescape=False, keep_trailing_newline=True)


class LayoutSet:
    """All layouts of a site, validated once and resolved into cached parent chains.

    Construction checks every distinct layout for a content slot and valid
    syntax, then walks each parent chain with a visited set to reject unknown
    parents and cycles. All problems are raised together as BuildFailed.
    """

    def __init__(self, layouts: Iterable[Layout] = (), max_depth: int = 10):
        self.max_depth = max_depth
        self._env = _make_env()
        self._layouts: dict[str, Layout] = {}
        self._templates: dict[str, Template] = {}
        self._chains: dict[str, tuple[str, ...]] = {}
        self._failed: dict[str, BuildError] = {}

        errors: list[BuildError] = []
        broken: set[str] = set()
        for layout in layouts:
            try:
                self._compile(layout)
            except BuildError as e:
                errors.append(e)
                broken.add(layout.name)
        errors.extend(self._check_structure(broken))
        if errors:
            raise BuildFailed(errors)

    def __contains__(self, name: str) -> bool:
        return name in self._layouts

    def __len__(self) -> int:
        return len(self._layouts)

    @property
    def names(self) -> list[str]:
        return sorted(self._layouts)

    def get(self, name: str) -> Layout:
        if name not in self._layouts:
            raise UnknownLayout(f"unknown layout '{name}'")
        return self._layouts[name]

    def _compile(self, layout: Layout) -> None:
        """Parse the template once and require a content slot."""
        source = layout.path or layout.name
        try:
            ast = self._env.parse(layout.template)
        except TemplateSyntaxError as e:
            raise MalformedLayout(f"layout '{layout.name}' has invalid template syntax: {e}", source=source) from e
        if CONTENT_SLOT not in meta.find_undeclared_variables(ast):
            raise MissingSlot(f"layout '{layout.name}' has no '{{{{ {CONTENT_SLOT} }}}}' slot", source=source)
        self._layouts[layout.name] = layout
        self._templates[layout.name] = self._env.from_string(layout.template)

    def _check_structure(self, broken: set[str]) -> list[BuildError]:
        """Report unknown parents and cycles, each exactly once."""
        errors: list[BuildError] = []
        cycles: set[frozenset[str]] = set()
        for name in sorted(self._layouts):
            layout = self._layouts[name]
            if layout.parent and layout.parent not in self._layouts and layout.parent not in broken:
                errors.append(UnknownLayout(
                    f"layout '{name}' names unknown parent layout '{layout.parent}'",
                    source=layout.path or name,
                ))

            walk: list[str] = []
            visited: set[str] = set()
            current: Optional[str] = name
            while current is not None and current in self._layouts:
                if current in visited:
                    loop = walk[walk.index(current):]
                    key = frozenset(loop)
                    if key not in cycles:
                        cycles.add(key)
                        errors.append(LayoutCycle(
                            f"layout cycle: {' -> '.join(loop + [current])}",
                            source=self._layouts[current].path or current,
                        ))
                    break
                visited.add(current)
                walk.append(current)
                current = self._layouts[current].parent
        return errors

    def add(self, layout: Layout) -> None:
        """Register or replace a layout after load.

        Only the slot is checked here; a cycle introduced this way is caught
        by the depth guard in resolve_chain.
        """
        self._compile(layout)
        self._chains.clear()
        self._failed.clear()

    def _walk(self, name: str) -> tuple[str, ...]:
        if name not in self._layouts:
            raise UnknownLayout(f"unknown layout '{name}'")
        chain: list[str] = []
        current: Optional[str] = name
        while current is not None:
            if len(chain) == self.max_depth:
                raise LayoutChainTooDeep(
                    f"layout '{name}' chain is deeper than {self.max_depth}: "
                    f"{' -> '.join(chain)} -> {current}"
                )
            if current not in self._layouts:
                raise UnknownLayout(f"layout '{chain[-1]}' names unknown parent layout '{current}'")
            chain.append(current)
            current = self._layouts[current].parent
        return tuple(chain)

    def resolve_chain(self, name: str) -> tuple[str, ...]:
        """Return the layout names from leaf to root for name, cached per name.

        A failed walk is cached too; each call raises a fresh copy so callers
        can attach their own source.
        """
        if name not in self._layouts:
            raise UnknownLayout(f"unknown layout '{name}'")
        if name not in self._chains and name not in self._failed:
            try:
                self._chains[name] = self._walk(name)
            except BuildError as e:
                self._failed[name] = e
        failure = self._failed.get(name)
        if failure is not None:
            raise type(failure)(failure.message)
        return self._chains[name]

    def warm(self) -> None:
        """Resolve every chain up front so concurrent renders only read the cache."""
        for name in self._layouts:
            try:
                self.resolve_chain(name)
            except BuildError as e:
                logger.debug("Layout %s does not resolve: %s", name, e)

    def render(self, name: str, content: str, context: dict[str, Any]) -> str:
        """Compose content through the chain of name, innermost layout first."""
        html = content
        for layout_name in self.resolve_chain(name):
            html = self._templates[layout_name].render(content=html, **context)
        return html


def parse_layout(name: str, text: str, path: Optional[Path] = None) -> Layout:
    """Build a Layout from template text with optional 'layout: <parent>' front matter."""
    try:
        fm, template = split_frontmatter(text)
    except BuildError as e:
        raise e.with_source(path or name)
    parent = fm.get("layout")
    parent = str(parent).strip() if parent is not None else None
    return Layout(name=name, template=template, parent=parent or None, path=path)


def load_layouts(directory: Path, max_depth: int = 10) -> LayoutSet:
    """Read every <name>.html template under directory into a validated LayoutSet."""
    if not directory.is_dir():
        raise FileNotFoundError(f"Layouts directory not found: {directory}")
    layouts, errors = [], []
    for p in sorted(directory.glob(f"*{LAYOUT_EXTENSION}")):
        try:
            layouts.append(parse_layout(p.stem, p.read_text(encoding="utf-8"), p))
        except BuildError as e:
            errors.append(e)
    if errors:
        raise BuildFailed(errors)
    layout_set = LayoutSet(layouts, max_depth=max_depth)
    logger.info("Loaded %d layout(s) from %s", len(layout_set), directory)
    return layout_set
