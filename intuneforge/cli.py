"""Command-line interface for IntuneForge."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from .common.types import PackageInfo, PackageResult
from .config import Config, validate_token
from .config_store import JsonFileStore, PackageConfigRepository, load_config_file
from .deploy import DeployRequest, deploy_to_intune
from .graph_client import GraphClient
from .models import PackageConfig
from .packager import build_package, read_package, verify_package, write_package
from .utils import ConfigError, IntuneForgeError, format_bytes, setup_logging


def _cli_header() -> str:
    return (
        "\n"
        f"{Fore.CYAN}IntuneForge{Style.RESET_ALL}\n"
        f"{Fore.WHITE}Build .intunewin packages and deploy them to Intune.{Style.RESET_ALL}\n"
    )


def _command_showcase() -> List[Tuple[str, str, str]]:
    return [
        ("build <config> <installer>", "Build package", "Encrypt into .intunewin."),
        ("inspect <package>", "Package details", "Read Detection.xml."),
        ("verify <package>", "Verify package", "Check MAC and digest."),
        ("deploy <config> <installer>", "Deploy to Intune", "Build, upload, assign."),
        ("deploy <config> --package <file>", "Deploy existing", "Upload a built package."),
        ("groups [prefix]", "List groups", "Find assignment group ids."),
        ("configs list", "Saved configs", "Show stored configurations."),
        ("configs import <file>", "Import config", "Store a JSON config."),
        ("configs export <id>", "Export config", "Write a JSON config."),
        ("configs remove <id>", "Remove config", "Delete a stored config."),
    ]


def _print_command_help(title: str) -> None:
    print(_cli_header())
    print(title)
    print("Usage: intuneforge <command> [options]")
    print("\nAvailable commands:\n")
    for command, label, usecase in _command_showcase():
        print(f"  {command:<34} - {label} ({usecase})")
    print("\nExamples:")
    print("  intuneforge build ./7zip.json ./7z2301-x64.exe")
    print("  intuneforge deploy ./7zip.json ./7z2301-x64.exe")
    print("  intuneforge groups Sales")
    print("")


class _FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        _print_command_help(f"{Fore.RED}Error:{Style.RESET_ALL} {message}")
        print(f"{Fore.YELLOW}Tip:{Style.RESET_ALL} Run `intuneforge help` for examples.")
        raise SystemExit(2)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = _FriendlyArgumentParser(description="IntuneForge CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser("build", help="Build a .intunewin package")
    build_parser.add_argument("config", help="Config JSON file or saved config id")
    build_parser.add_argument("installer", help="Path to the setup file")
    build_parser.add_argument("--output", type=str, help="Output directory")

    inspect_parser = subparsers.add_parser("inspect", help="Show package metadata")
    inspect_parser.add_argument("package", help="Path to .intunewin file")

    verify_parser = subparsers.add_parser("verify", help="Verify package integrity")
    verify_parser.add_argument("package", help="Path to .intunewin file")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy to Intune")
    deploy_parser.add_argument("config", help="Config JSON file or saved config id")
    deploy_parser.add_argument("installer", nargs="?", help="Path to the setup file")
    deploy_parser.add_argument("--package", type=str, help="Deploy an existing .intunewin")
    deploy_parser.add_argument("--token", type=str, help="Graph bearer token")

    groups_parser = subparsers.add_parser("groups", help="List directory groups")
    groups_parser.add_argument("prefix", nargs="?", help="Display name prefix")
    groups_parser.add_argument("--token", type=str, help="Graph bearer token")

    configs_parser = subparsers.add_parser("configs", help="Manage saved configurations")
    configs_sub = configs_parser.add_subparsers(dest="configs_command")
    configs_sub.add_parser("list", help="List saved configurations")
    import_parser = configs_sub.add_parser("import", help="Import a JSON configuration")
    import_parser.add_argument("file", help="Path to JSON file")
    export_parser = configs_sub.add_parser("export", help="Export a configuration")
    export_parser.add_argument("config_id", help="Configuration id")
    export_parser.add_argument("--output", type=str, default=".", help="Output directory")
    remove_parser = configs_sub.add_parser("remove", help="Remove a configuration")
    remove_parser.add_argument("config_id", help="Configuration id")

    subparsers.add_parser("help", help="Show help and usage examples")

    return parser.parse_args(argv)


def _repository() -> PackageConfigRepository:
    return PackageConfigRepository(JsonFileStore(Config.get_instance().config_store_path))


def _resolve_config(reference: str) -> PackageConfig:
    path = Path(reference).expanduser()
    if path.is_file():
        return load_config_file(path)
    config = _repository().get(reference)
    if config is None:
        raise ConfigError(f"No configuration file or saved config named {reference}.")
    return config


def _resolve_token(token: Optional[str]) -> str:
    if token:
        if not validate_token(token):
            raise ConfigError("--token format is invalid.")
        return token
    return Config.get_instance().require_token()


def _check_config(config: PackageConfig) -> None:
    errors = config.validation_errors()
    if errors:
        raise ConfigError(", ".join(errors))


def _build(config: PackageConfig, installer: Path) -> Tuple[PackageConfig, PackageResult]:
    """
    Build a package for config from installer.

    Returns:
        The configuration bound to the installer name, and the build result.
    """
    config = config.with_setup_file(installer.name)
    _check_config(config)

    info = PackageInfo(
        name=config.display_name,
        version=config.version,
        publisher=config.publisher,
        setup_file=installer.name,
        source_path=installer,
    )
    progress = tqdm(total=100, desc="Packaging", unit="%")

    def _progress(message: str, percent: int) -> None:
        progress.set_description(message)
        progress.n = percent
        progress.refresh()

    try:
        return config, build_package(info, progress_callback=_progress)
    finally:
        progress.close()


def command_build(args: argparse.Namespace) -> None:
    """
    Handle build command.
    """
    config, result = _build(_resolve_config(args.config), Path(args.installer).expanduser())
    output_dir = Path(args.output).expanduser() if args.output else Config.get_instance().output_dir
    path = write_package(result, output_dir, config.display_name, config.version)
    print(f"{Fore.GREEN}✅ Package created: {path} "
          f"({format_bytes(len(result.intunewin))}){Style.RESET_ALL}")


def command_inspect(args: argparse.Namespace) -> None:
    """
    Handle inspect command.
    """
    metadata, payload = read_package(Path(args.package).expanduser())
    print(f"{Fore.CYAN}Package details{Style.RESET_ALL}")
    print(f"Name: {metadata.name}")
    print(f"Setup file: {metadata.setup_file}")
    print(f"Payload file: {metadata.file_name}")
    print(f"Unencrypted size: {format_bytes(metadata.unencrypted_content_size)}")
    print(f"Encrypted size: {format_bytes(len(payload))}")
    print(f"Profile: {metadata.encryption_info.profile_identifier}")
    print(f"Digest algorithm: {metadata.encryption_info.file_digest_algorithm}")


def command_verify(args: argparse.Namespace) -> None:
    """
    Handle verify command.
    """
    metadata, payload = read_package(Path(args.package).expanduser())
    verify_package(metadata, payload)
    print(f"{Fore.GREEN}✅ Integrity verified.{Style.RESET_ALL}")


def command_deploy(args: argparse.Namespace) -> None:
    """
    Handle deploy command.
    """
    config = _resolve_config(args.config)
    token = _resolve_token(args.token)
    if args.package:
        metadata, payload = read_package(Path(args.package).expanduser())
        config = config.with_setup_file(metadata.setup_file)
        _check_config(config)
        request = DeployRequest(config=config, metadata=metadata, encrypted_payload=payload)
    elif args.installer:
        config, result = _build(config, Path(args.installer).expanduser())
        request = DeployRequest.from_result(config, result)
    else:
        raise ConfigError("Provide an installer path or --package.")

    settings = Config.get_instance().settings
    progress = tqdm(total=100, desc="Deploying", unit="%")

    def _progress(stage: str, percent: float) -> None:
        progress.set_description(stage)
        progress.n = round(percent)
        progress.refresh()

    try:
        app_id = asyncio.run(deploy_to_intune(token, request, settings, _progress))
    finally:
        progress.close()
    print(f"{Fore.GREEN}✅ Deployed! App ID: {app_id}{Style.RESET_ALL}")


async def _list_groups(token: str, prefix: Optional[str]) -> List[dict]:
    async with GraphClient(token, Config.get_instance().settings) as graph:
        return await graph.list_groups(prefix)


def command_groups(args: argparse.Namespace) -> None:
    """
    Handle groups command.
    """
    groups = asyncio.run(_list_groups(_resolve_token(args.token), args.prefix))
    if not groups:
        print("No groups found.")
        return
    print(f"{'Group ID':<38}  Display name")
    print("-" * 72)
    for group in groups:
        print(f"{group['id']:<38}  {group.get('displayName', '')}")


def command_configs(args: argparse.Namespace) -> None:
    """
    Handle configs command.
    """
    repository = _repository()
    if args.configs_command == "import":
        config = repository.import_config(Path(args.file).expanduser())
        print(f"{Fore.GREEN}✅ Imported as {config.id}{Style.RESET_ALL}")
    elif args.configs_command == "export":
        config = repository.get(args.config_id)
        if config is None:
            raise ConfigError(f"Configuration {args.config_id} not found.")
        path = repository.export_config(config, Path(args.output).expanduser())
        print(f"{Fore.GREEN}✅ Exported to {path}{Style.RESET_ALL}")
    elif args.configs_command == "remove":
        if repository.delete(args.config_id):
            print(f"{Fore.YELLOW}Removed configuration.{Style.RESET_ALL}")
        else:
            print("Configuration not found.")
    else:
        configs = repository.load_all()
        if not configs:
            print("No saved configurations. Import one with `intuneforge configs import <file>`.")
            return
        print(f"{'Config ID':<38}  {'Name':<28}  {'Version':<10}")
        print("-" * 80)
        for config in configs:
            name = config.display_name or config.name
            if len(name) > 28:
                name = f"{name[:25]}..."
            print(f"{config.id:<38}  {name:<28}  {config.version:<10}")


COMMANDS = {
    "build": command_build,
    "inspect": command_inspect,
    "verify": command_verify,
    "deploy": command_deploy,
    "groups": command_groups,
    "configs": command_configs,
}


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point.
    """
    colorama_init()
    args = parse_arguments(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        _print_command_help("Choose a command to continue.")
        return
    if args.command == "help":
        _print_command_help("IntuneForge CLI Help")
        return
    try:
        COMMANDS[args.command](args)
    except IntuneForgeError as exc:
        stage = f" [{exc.stage}]" if exc.stage else ""
        print(f"{Fore.RED}Error{stage}: {exc}{Style.RESET_ALL}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
