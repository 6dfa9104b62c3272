#!/usr/bin/env python3
"""
KSPModManager
Mod manager for Kerbal Space Program, command line entry point.

Usage:
    python main.py --ksp-root PATH [--catalog FILE] [--debug] COMMAND

Commands:
    list        Show the mods of the catalog and their state
    refresh     Derive installed/checked state from the game folder
    process     Install checked and uninstall unchecked mod files
    scan        Add unknown GameData folders as mods
    collisions  Show files of different mods sharing a destination
"""

import argparse
import sys
from pathlib import Path

# Ensure the project directory is in the path
project_dir = Path(__file__).parent.absolute()
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

COMMANDS = ("list", "refresh", "process", "scan", "collisions")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kspmodmanager", description="Kerbal Space Program mod manager")
    parser.add_argument("--ksp-root", help="Game install root (default: last selected)")
    parser.add_argument("--catalog", help="Catalog file (default: <ksp-root>/KSPModManager.cfg)")
    parser.add_argument("--override", action="store_true", help="Overwrite existing files on install")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("command", choices=COMMANDS)
    return parser


def print_mods(selection) -> None:
    from mod_node import desired_state

    if not selection.mods:
        print("No mods.")
        return
    for mod in selection.mods:
        state = "installed" if mod.is_installed or mod.has_installed_children else "not installed"
        version = f" {mod.version}" if mod.version else ""
        print(f"[{desired_state(mod).value:9}] {mod.name}{version} ({state})")
        if mod.is_outdated:
            print("    outdated")


def main(argv=None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    from config_handler import ConfigHandler
    from logger import setup_logging
    from mod_selection import ModSelection

    config_handler = ConfigHandler()
    setup_logging(config_handler.config_dir, debug=args.debug)

    ksp_root = args.ksp_root or config_handler.config.ksp_root
    if not ksp_root or not Path(ksp_root).is_dir():
        print(f"Error: No valid game install root: {ksp_root or '(none)'}", file=sys.stderr)
        return 2

    selection = ModSelection(ksp_root, config_handler.config)
    catalog = Path(args.catalog) if args.catalog else selection.catalog_path
    try:
        loaded = selection.load_catalog(catalog)
        if loaded.errors:
            for error in loaded.errors:
                print(f"Error: {error}", file=sys.stderr)
            return 1

        if args.command == "list":
            print_mods(selection)
            return 0

        if args.command == "refresh":
            result = selection.refresh_checked_state()
            print(f"{result.processed} nodes refreshed, {len(result.errors)} errors")
        elif args.command == "process":
            result = selection.process_mods(override_existing=args.override or None)
            print(result.summary())
            for failure in result.failures:
                print(f"  {failure.node}: {failure.reason}")
        elif args.command == "scan":
            added = selection.scan_game_data()
            print(f"{len(added)} mods added")
        elif args.command == "collisions":
            warnings = selection.get_collisions()
            for warning in warnings:
                print(warning)
            print(f"{len(warnings)} collisions")
            return 0

        if not selection.save_catalog(catalog):
            return 1
        return 0
    finally:
        selection.close()


if __name__ == "__main__":
    sys.exit(main())
