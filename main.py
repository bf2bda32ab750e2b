#!/usr/bin/env python3
"""
xmlstore - command line access to an XML record store.

Reads its settings from config.yaml, opens the configured store and runs one
command: create, add, get, find or list. Records are printed as JSON.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from xmlstore import XMLDatabase, SimpleSchema, StoreStructureError
from xmlstore.config import ConfigManager, get_config


def setup_logging(settings: ConfigManager):
    """Configure logging for the application."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # stdout carries the JSON output
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_filename:
        handlers.append(logging.FileHandler(settings.log_filename))

    logging.basicConfig(
        level=level,
        format=settings.log_format,
        handlers=handlers
    )


def parse_field_assignments(assignments: List[str]) -> Dict[str, Any]:
    """
    Build a record from key=value arguments.

    Dotted keys nest, so 'address.city=Berlin' becomes
    {'address': {'city': 'Berlin'}}.

    Args:
        assignments: The key=value strings

    Returns:
        The record mapping

    Raises:
        ValueError: If an argument has no '=' or an empty key segment
    """
    record: Dict[str, Any] = {}

    for assignment in assignments:
        if "=" not in assignment:
            raise ValueError(f"Expected key=value, got {assignment!r}")

        key, value = assignment.split("=", 1)
        steps = key.split(".")
        if not all(steps):
            raise ValueError(f"Invalid field name: {key!r}")

        target = record
        for step in steps[:-1]:
            nested = target.get(step)
            if not isinstance(nested, dict):
                nested = {}
                target[step] = nested
            target = nested
        target[steps[-1]] = value

    return record


def open_store(settings: ConfigManager, path: Optional[str], create: bool = False) -> XMLDatabase:
    """
    Open the configured store.

    Args:
        settings: Configuration to read schema and storage settings from
        path: Store path overriding the configured one
        create: Write a fresh skeleton first

    Returns:
        The opened XMLDatabase
    """
    return XMLDatabase(
        SimpleSchema.from_config(settings),
        path or settings.store_path,
        create=create,
        base_dir=settings.base_dir,
        pretty_print=settings.pretty_print,
        encoding=settings.encoding
    )


def print_json(data: Any):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def command_create(args: argparse.Namespace, settings: ConfigManager) -> int:
    target = settings.base_dir / (args.path or settings.store_path)
    if target.exists() and not args.force:
        logging.error(f"Store {target} already exists, use --force to replace it")
        return 1

    with open_store(settings, args.path, create=True):
        pass
    print(str(target))
    return 0


def command_add(args: argparse.Namespace, settings: ConfigManager) -> int:
    record = parse_field_assignments(args.fields)
    target = settings.base_dir / (args.path or settings.store_path)

    with open_store(settings, args.path, create=not target.exists()) as db:
        record_id = db.add_data(record)
    print_json({"id": record_id})
    return 0


def command_get(args: argparse.Namespace, settings: ConfigManager) -> int:
    with open_store(settings, args.path) as db:
        record = db.find_by_id(args.id)

    print_json(record)
    return 0 if record is not None else 1


def command_find(args: argparse.Namespace, settings: ConfigManager) -> int:
    with open_store(settings, args.path) as db:
        matches = db.find_by(args.field.split("."), args.value)
        records = list(matches) if matches is not None else []

    print_json(records)
    return 0 if records else 1


def command_list(args: argparse.Namespace, settings: ConfigManager) -> int:
    with open_store(settings, args.path) as db:
        records = list(db)

    print_json(records)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="xmlstore - flat-file record store kept in one XML document"
    )
    parser.add_argument("--config", help="Path to the configuration file (default: config.yaml)")
    parser.add_argument("--path", help="Store file, overrides storage.path from the configuration")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create an empty store")
    create_parser.add_argument("--force", action="store_true", help="Replace an existing store")
    create_parser.set_defaults(func=command_create)

    add_parser = subparsers.add_parser("add", help="Add a record")
    add_parser.add_argument("fields", nargs="+", help="Fields as key=value, dotted keys nest")
    add_parser.set_defaults(func=command_add)

    get_parser = subparsers.add_parser("get", help="Show the record with an id")
    get_parser.add_argument("id", type=int, help="Record id")
    get_parser.set_defaults(func=command_get)

    find_parser = subparsers.add_parser("find", help="Show records whose field equals a value")
    find_parser.add_argument("field", help="Field name, dotted for nested fields")
    find_parser.add_argument("value", help="Exact value to match")
    find_parser.set_defaults(func=command_find)

    list_parser = subparsers.add_parser("list", help="Show all records in insertion order")
    list_parser.set_defaults(func=command_list)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = ConfigManager(args.config) if args.config else get_config()
    setup_logging(settings)

    try:
        return args.func(args, settings)
    except (FileNotFoundError, StoreStructureError, ValueError, TypeError) as e:
        logging.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
