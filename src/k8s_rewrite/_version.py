# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
__version__ = "0.1.0"
