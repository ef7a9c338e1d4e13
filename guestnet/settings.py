# This file is part of guestnet. See LICENSE file for license information.

# Set and read for determining the guestnet config file location
CFG_ENV_NAME = "GUESTNET_CFG"

# This is expected to be a yaml formatted file
GUESTNET_CONFIG = "/etc/guestnet/guestnet.cfg"

# Suffix shared by every file name this agent writes
ARTIFACT_SUFFIX = "google-guest-agent"

# What u get if no config is provided
CFG_BUILTIN = {
    "network": {
        "manage_primary_nic": True,
        "priority": [
            "netplan",
            "systemd-networkd",
            "NetworkManager",
            "wicked",
        ],
        "managers": {},
        "command_timeout": 10,
    },
    "log_basic": True,
}
