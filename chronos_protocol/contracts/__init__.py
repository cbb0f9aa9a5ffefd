import os
import json

ABI_DIR = os.path.join(os.path.dirname(__file__), "abis")

def load_abi(contract_name: str) -> list:
    """
    Loads the ABI for a given contract name from the package resources.
    Accepts either a bare ABI list or a full Hardhat artifact.
    """
    if not contract_name.endswith(".json"):
        contract_name += ".json"

    abi_path = os.path.join(ABI_DIR, contract_name)

    if not os.path.exists(abi_path):
        raise FileNotFoundError(f"ABI for {contract_name} not found at {abi_path}")

    with open(abi_path, "r") as f:
        artifact = json.load(f)
        if isinstance(artifact, dict):
            return artifact.get("abi", [])
        return artifact

def abi_function_names(abi: list) -> list:
    return [entry["name"] for entry in abi if entry.get("type") == "function"]

def abi_function_signatures(abi: list) -> list:
    signatures = []
    for entry in abi:
        if entry.get("type") != "function":
            continue
        arg_types = ",".join(i["type"] for i in entry.get("inputs", []))
        signatures.append(f"{entry['name']}({arg_types})")
    return signatures
