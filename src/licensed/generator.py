"""
Generation of the license module.

The skeleton is rendered from trusted names only, with an empty string in
every LicenseText field. It is then parsed into an ast tree, and each
placeholder is replaced by a Constant node holding the raw license text, so
license content never passes through text templating. The printer relies
on ast.unparse to quote and escape the literals.

The skeleton template and the slot matcher live side by side in this module;
changing the shape of one requires changing the other.
"""

import ast
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterator, Sequence, Tuple

from .cli_config import STDOUT_SENTINEL, GenerationConfig, validate_generated_names
from .dependency import DependencyRecord
from .error_handling import (
    LicenseReadError,
    MissingLicenseFile,
    OutputWriteError,
    SkeletonParseError,
    SlotCountMismatch,
    UnencodableLicenseText,
    UnknownDependency,
)
from .structured_logging import (
    log_generation_completed,
    log_license_injected,
    log_output_written,
)

RESULT_NAME = "result"
PACKAGE_FIELD = "Package"
LICENSE_TEXT_FIELD = "LicenseText"

SKELETON_TEMPLATE = '''\
"""Third-party license texts bundled with the {package_name} package.

Code generated by licensed. DO NOT EDIT.
"""
from typing import List, NamedTuple


class {type_name}(NamedTuple):
    {package_field}: str
    {license_text_field}: str


def {function_name}() -> List[{type_name}]:
    {result}: List[{type_name}] = []
{appends}
    return {result}
'''

APPEND_TEMPLATE = (
    "    {result}.append({type_name}({package_field}={package!r}, "
    "{license_text_field}=''))\n"
)


@dataclass
class LiteralSlot:
    """The LicenseText field of one record construction in the accessor."""

    package: str
    keyword: ast.keyword


def render_skeleton(names: Sequence[str], config: GenerationConfig) -> str:
    """
    Render the placeholder module for the given dependency names.

    Names are embedded with repr(), so any string yields valid source.
    """
    validate_generated_names(config.function_name, config.type_name)

    appends = "".join(
        APPEND_TEMPLATE.format(
            result=RESULT_NAME,
            type_name=config.type_name,
            package_field=PACKAGE_FIELD,
            license_text_field=LICENSE_TEXT_FIELD,
            package=name,
        )
        for name in names
    )
    return SKELETON_TEMPLATE.format(
        package_name=config.package_name,
        type_name=config.type_name,
        function_name=config.function_name,
        package_field=PACKAGE_FIELD,
        license_text_field=LICENSE_TEXT_FIELD,
        result=RESULT_NAME,
        appends=appends,
    )


def parse_skeleton(source: str, function_name: str) -> Tuple[ast.Module, ast.FunctionDef]:
    """
    Parse a rendered skeleton and find the accessor function.

    Raises:
        SkeletonParseError: If the source does not parse or lacks the function
    """
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise SkeletonParseError(f"Failed to parse generated skeleton: {e}")

    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name == function_name:
            return tree, node
    raise SkeletonParseError(f"Failed to find generated function {function_name}")


def _record_call(stmt: ast.stmt, type_name: str):
    """Return the record construction appended by stmt, or None."""
    if not isinstance(stmt, ast.Expr) or not isinstance(stmt.value, ast.Call):
        return None
    call = stmt.value
    func = call.func
    if not (
        isinstance(func, ast.Attribute)
        and func.attr == "append"
        and isinstance(func.value, ast.Name)
        and func.value.id == RESULT_NAME
        and call.args
    ):
        return None

    record = call.args[-1]
    if (
        isinstance(record, ast.Call)
        and isinstance(record.func, ast.Name)
        and record.func.id == type_name
    ):
        return record
    return None


def iter_literal_slots(function: ast.FunctionDef, type_name: str) -> Iterator[LiteralSlot]:
    """
    Yield the LicenseText slots of the accessor, in statement order.

    Raises:
        SkeletonParseError: If a record construction has an unexpected shape
    """
    for stmt in function.body:
        record = _record_call(stmt, type_name)
        if record is None:
            continue

        fields = record.keywords
        if (
            len(fields) != 2
            or fields[0].arg != PACKAGE_FIELD
            or fields[1].arg != LICENSE_TEXT_FIELD
        ):
            raise SkeletonParseError(
                f"Unexpected record construction on line {stmt.lineno} of the skeleton"
            )

        package = fields[0].value
        if not (isinstance(package, ast.Constant) and isinstance(package.value, str)):
            raise SkeletonParseError(
                f"Failed to decode package name on line {stmt.lineno} of the skeleton"
            )
        yield LiteralSlot(package=package.value, keyword=fields[1])


def read_license_text(record: DependencyRecord) -> str:
    """
    Read a dependency's license file as text that round-trips to its bytes.

    Raises:
        MissingLicenseFile: If no license file was located
        LicenseReadError: If the file cannot be read
        UnencodableLicenseText: If the content is not valid UTF-8
    """
    if record.license_path is None:
        raise MissingLicenseFile(record.name)

    try:
        with open(record.license_path, "rb") as license_file:
            data = license_file.read()
    except OSError as e:
        raise LicenseReadError(record.name, e)

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise UnencodableLicenseText(record.name, e)


def inject_licenses(
    function: ast.FunctionDef, type_name: str, records: Sequence[DependencyRecord]
) -> int:
    """
    Replace every LicenseText placeholder with the dependency's license text.

    Only the literal nodes of the slots are replaced. Returns the number of
    slots filled.
    """
    slots = list(iter_literal_slots(function, type_name))
    if len(slots) != len(records):
        raise SlotCountMismatch(len(slots), len(records))

    by_name: Dict[str, DependencyRecord] = {record.name: record for record in records}

    for slot in slots:
        record = by_name.get(slot.package)
        if record is None:
            raise UnknownDependency(slot.package)

        text = read_license_text(record)
        literal = ast.Constant(value=text)
        slot.keyword.value = ast.copy_location(literal, slot.keyword.value)
        log_license_injected(record.name, len(text.encode("utf-8")))

    return len(slots)


_DEFINITIONS = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


def _blank_lines_between(previous: ast.stmt, current: ast.stmt) -> int:
    if isinstance(previous, _DEFINITIONS) or isinstance(current, _DEFINITIONS):
        return 2
    return 0


def print_tree(tree: ast.Module) -> str:
    """
    Serialize the tree to canonical source text.

    ast.unparse keeps a single blank line between top-level statements, so
    each statement is printed on its own and top-level definitions are
    separated by two blank lines.
    """
    tree = ast.fix_missing_locations(tree)
    chunks = []
    previous = None
    for node in tree.body:
        if previous is not None:
            chunks.append("\n" * _blank_lines_between(previous, node))
        # A one-statement module keeps docstring formatting for the first node.
        chunks.append(ast.unparse(ast.Module(body=[node], type_ignores=[])))
        chunks.append("\n")
        previous = node
    return "".join(chunks)


def generate(records: Sequence[DependencyRecord], config: GenerationConfig) -> str:
    """
    Build the complete license module source for records.

    Nothing is written; every failure raises before any output exists.
    """
    skeleton = render_skeleton([record.name for record in records], config)
    tree, function = parse_skeleton(skeleton, config.function_name)
    count = inject_licenses(function, config.type_name, records)
    source = print_tree(tree)
    log_generation_completed(config.function_name, count, len(source))
    return source


def write_output(source: str, destination: str, stream=None) -> None:
    """
    Write source to a file path, or to stdout for the stream sentinel.

    Both destinations receive the same UTF-8 bytes with "\\n" newlines. For
    the sentinel, stream is a binary stream and defaults to the buffer
    behind sys.stdout.

    Raises:
        OutputWriteError: If the file or stream cannot be written
    """
    try:
        data = source.encode("utf-8")
    except UnicodeEncodeError as e:
        raise OutputWriteError(f"Generated module cannot be encoded as UTF-8: {e}")

    if destination == STDOUT_SENTINEL:
        try:
            if stream is None:
                sys.stdout.flush()
                stream = sys.stdout.buffer
            stream.write(data)
            stream.flush()
        except OSError as e:
            raise OutputWriteError(f"Failed to write output to stdout: {e}")
        log_output_written("<stdout>")
        return

    try:
        fd = os.open(destination, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
        with open(fd, "wb") as out:
            out.write(data)
    except OSError as e:
        raise OutputWriteError(f"Failed to write output file {destination}: {e}")
    log_output_written(destination)
