#!/usr/bin/env python3
# This file is part of guestnet. See LICENSE file for license information.

import argparse
import logging
import sys

from guestnet import config, log, net, settings, subp, util, version
from guestnet.net import managers, topology

LOG = logging.getLogger(__name__)

# Failures a subcommand reports instead of crashing on.
HANDLED_ERRORS = (
    net.ProbeError,
    subp.ProcessExecutionError,
    OSError,
    ValueError,
)


def _network_cfg(cfg):
    return util.get_cfg_by_path(cfg, ("network",), {})


def _default_interface():
    names = sorted(name for name, _mac in net.get_interfaces())
    return names[0] if names else None


def handle_detect_args(name, args, cfg):
    """Print the name of the manager in charge of an interface."""
    iface = args.interface or _default_interface()
    if not iface:
        LOG.warning("No network interface found")
        print("none")
        return 0
    found = managers.select_manager(
        managers.build_managers(_network_cfg(cfg)), iface
    )
    print(found.name if found else "none")
    return 0


def handle_setup_args(name, args, cfg):
    """Configure the interfaces described by a metadata document."""
    try:
        metadata = util.load_json(util.load_text_file(args.metadata))
    except TypeError as e:
        raise ValueError(
            "Invalid metadata in %s: %s" % (args.metadata, e)
        ) from e
    # Accept both a full metadata dump and its instance subtree.
    metadata = metadata.get("instance", metadata)
    netcfg = _network_cfg(cfg)
    interfaces_by_mac = net.get_interfaces_by_mac()
    wanted = topology.from_metadata(
        metadata,
        interfaces_by_mac,
        manage_primary_nic=util.get_cfg_option_bool(
            netcfg, "manage_primary_nic", True
        ),
    )
    found = managers.setup_interfaces(
        managers.build_managers(netcfg), wanted, interfaces_by_mac
    )
    print(found.name if found else "none")
    return 0


def handle_rollback_args(name, args, cfg):
    """Remove every artifact guestnet wrote, whichever manager it was for."""
    removed = managers.rollback_all(managers.build_managers(_network_cfg(cfg)))
    for mgr_name, filenames in sorted(removed.items()):
        for filename in filenames:
            print("%s: %s" % (mgr_name, filename))
    return 0


def get_parser(parser=None):
    """Build or extend an arg parser for guestnet.

    @param parser: Optional existing ArgumentParser instance representing the
        guestnet command.

    @returns: ArgumentParser with proper argument configuration.
    """
    if not parser:
        parser = argparse.ArgumentParser(prog="guestnet")

    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version="%(prog)s " + (version.version_string()),
        help="Show program's version number and exit.",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Show additional pre-action logging (default: %(default)s).",
        default=False,
    )
    parser.add_argument(
        "--config",
        "-c",
        help=(
            "Configuration file to read (default: $%s or %s)."
            % (settings.CFG_ENV_NAME, settings.GUESTNET_CONFIG)
        ),
        default=None,
    )

    subparsers = parser.add_subparsers(title="Subcommands", dest="subcommand")
    subparsers.required = True

    parser_detect = subparsers.add_parser(
        "detect", help="Print the network manager in charge of an interface."
    )
    parser_detect.add_argument(
        "--interface",
        "-i",
        help="Interface to probe (default: first live interface by name).",
        default=None,
    )
    parser_detect.set_defaults(action=("detect", handle_detect_args))

    parser_setup = subparsers.add_parser(
        "setup", help="Write network configuration from instance metadata."
    )
    parser_setup.add_argument(
        "--metadata",
        "-m",
        required=True,
        help="Path to a JSON instance metadata document.",
    )
    parser_setup.set_defaults(action=("setup", handle_setup_args))

    parser_rollback = subparsers.add_parser(
        "rollback", help="Remove all network configuration guestnet wrote."
    )
    parser_rollback.set_defaults(action=("rollback", handle_rollback_args))
    return parser


def sub_main(args):
    # Subparsers.required = True and each subparser sets action=(name, functor)
    (name, functor) = args.action
    level = logging.DEBUG if args.debug else logging.WARNING

    log.reset_logging()
    try:
        cfg = config.read_config(args.config)
    except ValueError:
        log.setup_basic_logging(level)
        util.logexc(LOG, "Failed to read guestnet configuration")
        return 1
    log.setup_logging(cfg, level)

    try:
        return functor(name, args, cfg)
    except HANDLED_ERRORS as e:
        util.logexc(LOG, "guestnet %s failed: %s", name, e)
        return 1
    finally:
        log.flush_loggers(LOG)


def main(sysv_args=None):
    if not sysv_args:
        sysv_args = sys.argv[1:]
    parser = get_parser()
    args = parser.parse_args(args=sysv_args)
    return sub_main(args)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
