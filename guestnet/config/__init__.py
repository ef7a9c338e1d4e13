# This file is part of guestnet. See LICENSE file for license information.

import copy
import logging
import os
from typing import Optional

from guestnet import settings, util
from guestnet.config.schema import validate_config

LOG = logging.getLogger(__name__)


def read_config(path: Optional[str] = None) -> dict:
    """Return the builtin configuration merged with path and its .d dir.

    The path defaults to the value of the GUESTNET_CFG environment variable,
    then to /etc/guestnet/guestnet.cfg.

    @raises SchemaValidationError: the merged configuration is invalid.
    """
    if path is None:
        path = os.environ.get(settings.CFG_ENV_NAME, settings.GUESTNET_CONFIG)
    LOG.debug("Reading configuration from %s", path)
    cfg = util.mergemanydict(
        [
            util.read_conf_with_confd(path),
            copy.deepcopy(settings.CFG_BUILTIN),
        ]
    )
    validate_config(cfg, strict=True)
    return cfg
