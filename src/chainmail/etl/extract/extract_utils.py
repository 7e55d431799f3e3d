import json
import os
from typing import Any, Dict, List


def save_logs_to_jsonl(logs: List[Dict[str, Any]], output_file: str) -> int:
    """
    Appends raw logs to a JSONL (JSON Lines) file, skipping ones already saved.

    Parameters:
    -----------
    logs : list
        Raw eth_getLogs entries
    output_file : str
        Path to the .jsonl file (will be created if doesn't exist)

    Returns:
    --------
    int: Number of logs written in this call
    """
    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    # Dedup key: one log is identified by its tx hash and position in the block
    existing_keys = set()
    if os.path.exists(output_file):
        with open(output_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    log = json.loads(line)
                    existing_keys.add(f"{log.get('transactionHash', '')}-{log.get('logIndex', '')}")

    new_count = 0
    with open(output_file, "a", encoding="utf-8") as f:
        for log in logs:
            key = f"{log.get('transactionHash', '')}-{log.get('logIndex', '')}"
            if key in existing_keys:
                continue
            existing_keys.add(key)
            f.write(json.dumps(log) + "\n")
            new_count += 1

    return new_count
