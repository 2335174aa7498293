# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Render Kubernetes manifest templates into an apply-ready directory."""
