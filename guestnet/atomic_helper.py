# This file is part of guestnet. See LICENSE file for license information.

import logging
import os
import tempfile

from guestnet import util

_DEF_PERMS = 0o644
LOG = logging.getLogger(__name__)


def write_file(filename, content, mode=_DEF_PERMS, omode="wb"):
    """open filename in mode omode, write content, set permissions to mode

    The content lands in a temporary file in the same directory which is
    then renamed over filename, so readers never observe a partial file.
    """

    if "b" in omode:
        content = util.encode_text(content)

    tf = None
    try:
        dirname = os.path.dirname(filename)
        util.ensure_dir(dirname)
        tf = tempfile.NamedTemporaryFile(
            dir=dirname, prefix=".", delete=False, mode=omode
        )
        LOG.debug(
            "Atomically writing to file %s (via temporary file %s) - %s: [%o]"
            " %d bytes/chars",
            filename,
            tf.name,
            omode,
            mode,
            len(content),
        )
        tf.write(content)
        tf.flush()
        os.fsync(tf.fileno())
        tf.close()
        os.chmod(tf.name, mode)
        os.rename(tf.name, filename)
    except Exception as e:
        if tf is not None:
            tf.close()
            util.del_file(tf.name)
        raise e
