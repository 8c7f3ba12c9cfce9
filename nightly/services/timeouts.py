from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0

# Idempotent GH read retry policy (network-level only; stages are never retried)
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Native and web builds
BUILD_TIMEOUT_SECONDS = 2 * 60 * 60.0
WEB_BUILD_TIMEOUT_SECONDS = 60 * 60.0

# Host preparation (apt, xcode-select)
PRE_STEP_TIMEOUT_SECONDS = 15 * 60.0

# lipo, makepkg
TOOL_TIMEOUT_SECONDS = 5 * 60.0
