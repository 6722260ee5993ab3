# ----------------------------------------------------------------------------------------------- #
#                 $$$$$$\   $$$$$$\ $$$$$$$$\ $$\   $$\ $$\   $$\ $$$$$$\ $$\   $$\               #
#                $$  __$$\ $$  __$$\\__$$  __|$$ |  $$ |$$$\  $$ |\_$$  _|$$ |  $$ |              #
#                $$ /  \__|$$ /  $$ |  $$ |   $$ |  $$ |$$$$\ $$ |  $$ |  \$$\ $$  |              #
#                $$ |$$$$\ $$ |  $$ |  $$ |   $$ |  $$ |$$ $$\$$ |  $$ |   \$$$$  /               #
#                $$ |\_$$ |$$ |  $$ |  $$ |   $$ |  $$ |$$ \$$$$ |  $$ |   $$  $$<                #
#                $$ |  $$ |$$ |  $$ |  $$ |   $$ |  $$ |$$ |\$$$ |  $$ |  $$  /\$$\               #
#                \$$$$$$  | $$$$$$  |  $$ |   \$$$$$$  |$$ | \$$ |$$$$$$\ $$ /  $$ |              #
#                 \______/  \______/   \__|    \______/ \__|  \__|\______|\__|  \__|              #
# ----------------------------------------------------------------------------------------------- #
# Copyright (C) GOTUNIX Networks                                                                  #
# Copyright (C) Justin Ovens                                                                      #
# LICENSE: SPDX - AGPL-3.0-or-later                                                               #
# ----------------------------------------------------------------------------------------------- #
# This program is free software: you can redistribute it and/or modify                            #
# it under the terms of the GNU Affero General Public License as                                  #
# published by the Free Software Foundation, either version 3 of the                              #
# License, or (at your option) any later version.                                                 #
#                                                                                                 #
# This program is distributed in the hope that it will be useful,                                 #
# but WITHOUT ANY WARRANTY; without even the implied warranty of                                  #
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the                                   #
# GNU Affero General Public License for more details.                                             #
#                                                                                                 #
# You should have received a copy of the GNU Affero General Public License                        #
# along with this program.  If not, see <https://www.gnu.org/licenses/>.                          #
# ----------------------------------------------------------------------------------------------- #
"""Prompts shown to the user while trust stores are being configured."""

import asyncio
import getpass
import sys
from typing import Protocol, runtime_checkable


@runtime_checkable
class UserInterface(Protocol):
    """Hooks devcert calls when it needs the user. Pass your own via Options.ui."""

    async def get_windows_encryption_password(self) -> str: ...

    async def warn_chrome_on_linux_without_certutil(self) -> None: ...

    async def close_firefox_before_continuing(self) -> None: ...

    async def start_firefox_wizard(self, certificate_host: str) -> None: ...

    async def firefox_wizard_prompt_page(self, certificate_url: str) -> str: ...

    async def wait_for_firefox_wizard(self) -> None: ...


async def wait_for_user(prompt: str = ""):
    """Block until the user presses enter."""
    await asyncio.to_thread(input, prompt)


class DefaultUI:
    """Terminal implementation of UserInterface."""

    async def get_windows_encryption_password(self) -> str:
        return await asyncio.to_thread(getpass.getpass, "devcert password: ")

    async def warn_chrome_on_linux_without_certutil(self) -> None:
        print(
            """
  WARNING: It looks like you have Chrome installed, but you specified
  'skip_certutil_install'. Without certutil it is impossible to get Chrome
  to trust devcert's certificates. The certificates will work, but Chrome
  will continue to warn you that they are untrusted.
""",
            file=sys.stderr,
        )

    async def close_firefox_before_continuing(self) -> None:
        print("Please close Firefox before continuing")

    async def start_firefox_wizard(self, certificate_host: str) -> None:
        print(
            f"""
  devcert was unable to automatically configure Firefox. You'll need to
  complete this process manually. Firefox will walk you through it.

  When you're ready, press enter. Firefox will launch and display a wizard
  to walk you through trusting the devcert certificate. When you are
  finished, come back here and we'll finish up.

  (If Firefox doesn't start, start it yourself and navigate to
  {certificate_host} in a new tab.)
"""
        )
        await wait_for_user("<Press enter to launch the Firefox wizard>")

    async def firefox_wizard_prompt_page(self, certificate_url: str) -> str:
        return f"""
<html>
  <head>
    <meta http-equiv="refresh" content="0; url={certificate_url}" />
  </head>
</html>
"""

    async def wait_for_firefox_wizard(self) -> None:
        print(
            """
  Launching Firefox ...

  Once you've finished the Firefox wizard for adding the devcert
  certificate, press enter here and we'll wrap up.
"""
        )
        await wait_for_user("<Press enter to continue>")
