# This file is part of guestnet. See LICENSE file for license information.
