"""Human-readable descriptions for exit codes seen from installer tools."""

_MSI = {
    0: "success",
    13: "invalid data",
    87: "invalid parameter",
    1601: "Windows Installer service could not be accessed",
    1602: "installation cancelled by user",
    1603: "fatal error during installation",
    1605: "product is not installed",
    1618: "another installation is already in progress",
    1619: "installation package could not be opened",
    1620: "installation package is invalid",
    1625: "installation prohibited by system policy",
    1633: "installation package not supported on this platform",
    1638: "another version of this product is already installed",
    1641: "success, restart initiated",
    3010: "success, restart required",
}

# Package manager (winget) HRESULTs as signed 32-bit integers.
_PACKAGE_MANAGER = {
    0x8A150001: "internal error",
    0x8A150002: "invalid command line arguments",
    0x8A150006: "source open failed",
    0x8A15000F: "data missing from source",
    0x8A150010: "no package found matching the query",
    0x8A150011: "hash of downloaded installer does not match",
    0x8A150014: "no packages found",
    0x8A150019: "installer failed",
    0x8A15002B: "no applicable update found",
    0x8A150044: "install technology not supported",
    0x8A150061: "package already installed",
    0x8A150101: "application is currently running",
    0x8A150102: "another installation is already in progress",
    0x8A150109: "restart required to complete installation",
}


def _signed32(value: int) -> int:
    return value - (1 << 32) if value >= (1 << 31) else value


_DESCRIPTIONS = {**_MSI, **{_signed32(code): text for code, text in _PACKAGE_MANAGER.items()}}


def describe_exit_code(code: int) -> str:
    description = _DESCRIPTIONS.get(code)
    if description is None:
        # Some tools report the unsigned form.
        description = _DESCRIPTIONS.get(_signed32(code & 0xFFFFFFFF))

    if description is None:
        return f"exit code {code}"
    if code < 0:
        return f"exit code {code} (0x{code & 0xFFFFFFFF:08X}): {description}"
    return f"exit code {code}: {description}"
