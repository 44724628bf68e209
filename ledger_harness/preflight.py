"""
Fixture preflight: before a run, confirm that every fixture contract with a
known address actually has runtime code there, and that the code contains
the 4-byte selector of each function in its ABI.
"""

from typing import Dict, Iterable, Optional

from .contracts import ContractHandle
from .report import ArtifactWriter, log_warn


def check_selectors_in_code(code_hex: str, selectors: Dict[str, str]) -> Dict[str, bool]:
    """selectors: mapping sig -> selector hex. Returns mapping sig -> found."""
    code = code_hex.lower()
    res = {}
    for sig, sel in selectors.items():
        needle = sel[2:].lower() if sel.startswith("0x") else sel.lower()
        res[sig] = needle in code
    return res


def check_fixture(ledger, handle: ContractHandle) -> Dict:
    address = handle.address or handle.expected_address
    entry = {"name": handle.name, "address": address, "has_code": False, "selectors": {}}
    if address is None:
        entry["error"] = "no address"
        return entry

    code = ledger.get_code(address)
    code_hex = bytes(code).hex()
    entry["has_code"] = len(code_hex) > 0
    if not entry["has_code"]:
        return entry

    selectors = {m.signature: "0x" + m.selector.hex() for m in handle.methods}
    entry["selectors"] = check_selectors_in_code(code_hex, selectors)
    return entry


def check_fixtures(
    ledger, handles: Iterable[ContractHandle], artifacts: Optional[ArtifactWriter] = None
) -> Dict:
    report = {"contracts": [], "ok": True}
    for handle in handles:
        entry = check_fixture(ledger, handle)
        missing = [sig for sig, found in entry["selectors"].items() if not found]
        if not entry["has_code"]:
            log_warn(f"{handle.name}: no runtime code at {entry['address']}")
            report["ok"] = False
        elif missing:
            log_warn(f"{handle.name}: selectors not found in runtime code: {missing}")
            report["ok"] = False
        report["contracts"].append(entry)

    if artifacts is not None:
        artifacts.save("preflight_report", report)
    return report
