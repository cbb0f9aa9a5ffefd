import argparse
import json
import os

CONTRACTS = ("ChronosFactory", "ChronoContract")
DEST_DIR = "chronos_protocol/contracts/abis"


def extract_abi(contract_name, source_json, dest_json):
    if not os.path.exists(source_json):
        print(f"Error: {source_json} not found")
        return False
    with open(source_json, 'r') as f:
        data = json.load(f)
        abi = data.get("abi", data) if isinstance(data, dict) else data

    os.makedirs(os.path.dirname(dest_json), exist_ok=True)
    with open(dest_json, 'w') as f:
        json.dump(abi, f, indent=2)
    print(f"Extracted ABI for {contract_name} to {dest_json}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Copy contract ABIs out of Hardhat artifacts")
    parser.add_argument("--artifacts", default="artifacts", help="Hardhat artifacts directory")
    parser.add_argument("--dest", default=DEST_DIR, help="Destination ABI directory")
    args = parser.parse_args()

    ok = True
    for name in CONTRACTS:
        ok &= extract_abi(
            name,
            os.path.join(args.artifacts, "contracts", f"{name}.sol", f"{name}.json"),
            os.path.join(args.dest, f"{name}.json"),
        )
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
