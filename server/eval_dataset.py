"""
Runs the fixed OpenMTP evaluation questions through the RAG chain and saves the answers as CSV.
- Output: `eval-results/test_results_<timestamp>.csv` with `sl, query, response, correct_answer, trace_id`.
- A failing question is recorded as `ERROR: <message>` with trace id `ERROR`.

## Usage:
- Run this file from `server` folder as:
- `python eval_dataset.py --out-dir ./eval-results`
"""

import os
import csv
import sys
import time
import argparse
from datetime import datetime, timezone
from typing import List, Optional

from support_bot import config
from support_bot.chains.rag import SupportRAG
from support_bot.core.database import VectorDB

from logger import get_logger

log = get_logger(name="eval_dataset")

EVAL_USER_ID = "eval-user"
FIELDNAMES = ["sl", "query", "response", "correct_answer", "trace_id"]

EVAL_QUESTIONS: List[str] = [
    "The app goes blank while trying to connect a Samsung device",
    "How to enable the List mode in the app",
    "How many MTP kernels are being used in the OpenMTP app",
    "How to toggle between these two MTP kernel modes?",
    "How to select multiple files in OpenMTP?",
    "Can we use mouse to drag to multi select files in OpenMTP?",
    "How to use OpenMTP on older MacOs",
    "Do you support Samsung phones?",
    "OpenMTP is showing blank screen when opening",
    "My phone isnt connecting",
    "Why does OpenMTP have trouble with Pixel devices?",
    "Does the Garmin Edge 1050 work with OpenMTP?",
]

CORRECT_ANSWERS: List[str] = [
    "1. Uninstall Samsung SmartSwitch, if installed. 2. Restart OpenMTP. 3. Follow the basic connection steps: "
    "unlock your device, unplug and reconnect, select File Transfer mode, and it should connect automatically.",
    "You may find the List mode option in settings -> 'File Manager' tab -> Toggle off 'View as Grid' option.",
    "Two. 1) Kalam Mode, the newer version with wider device compatibility, 2) the older Legacy Mode, "
    "a CLI-based kernel with lower speed and less device compatibility.",
    "Click on the 'MTP Mode' option on the right hand side pane and then select the MTP Kernel of your choice",
    "In the Grid/List view using the Command Key and Press the Navigation arrow for the selection. "
    "You may also press the select key and use navigation keys to select the files. "
    "In the list view there is also an option for the checkbox which users can use for selection",
    "No, this feature is currently not available",
    "Download v3.1.15 of the app from Github releases page of OpenMTP, Dont open the app yet, "
    "Turn off internet(important), Open the app, Goto settings, Update tab, turn off auto update, Turn internet on",
    "Yes, we do have support for the Samsung phones.",
    "Quit apps that hog MTP connection such as Photos, Preview, or iMovies. This usually resolves connection issues. "
    "You can follow the steps mentioned in this thread to see if doing them fixes your connectivity issue? "
    "https://github.com/ganeshrvel/openmtp/issues/276",
    "Quit apps that hog MTP connection such as Photos, Preview, or iMovies. This usually resolves connection issues. "
    "You can follow the steps mentioned in this thread to see if doing them fixes your connectivity issue? "
    "https://github.com/ganeshrvel/openmtp/issues/276",
    "Pixel's internal MTP server is unstable, slow, and throws inconsistent errors.",
    "Compatibility depends on firmware version. "
    "Garmin employee suggested firmware updates will resolve MTP connection issues.",
]


def run_evaluation(rag: SupportRAG, questions: List[str] = EVAL_QUESTIONS,
                   answers: List[str] = CORRECT_ANSWERS, delay: float = config.EVAL_DELAY) -> List[dict]:
    """Ask every question once. Each gets its own session id `dataset-eval-q<n>`."""

    results = []
    for sl, (question, correct_answer) in enumerate(zip(questions, answers), start=1):
        log.info(f"Question {sl}/{len(questions)}: '{question}'")
        try:
            response = rag.generate_response(question, user_id=EVAL_USER_ID, session_id=f"dataset-eval-q{sl}")
            answer, trace_id = response["answer"], response["logs"]["trace_id"]
        except Exception as e:
            log.exception(f"Error processing question {sl}: {e}")
            answer, trace_id = f"ERROR: {e}", "ERROR"

        results.append({
            "sl": sl,
            "query": question,
            "response": answer,
            "correct_answer": correct_answer,
            "trace_id": trace_id,
        })
        time.sleep(delay)

    return results


def results_filename(now: Optional[datetime] = None) -> str:
    """`test_results_2024-05-01T10-00-00-000Z.csv` style name."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z").replace(":", "-").replace(".", "-")
    return f"test_results_{stamp}.csv"


def write_results(results: List[dict], output_dir: str = config.EVAL_OUTPUT_DIR) -> str:
    """Save the results as CSV and return the file path."""

    os.makedirs(output_dir, exist_ok=True)
    csv_file = os.path.join(output_dir, results_filename())

    with open(csv_file, "w", encoding="utf-8", newline="") as f:
        # Plain header, then every text field quoted
        f.write(",".join(FIELDNAMES) + "\n")
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
        writer.writerows(results)

    log.info(f"Results saved to: {csv_file}")
    return csv_file


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate the OpenMTP RAG chain on the fixed question set.")
    parser.add_argument("--out-dir", default=config.EVAL_OUTPUT_DIR, help="Directory for the CSV results.")
    parser.add_argument("--delay", type=float, default=config.EVAL_DELAY, help="Seconds between questions.")
    args = parser.parse_args(argv)

    try:
        rag = SupportRAG(VectorDB(collection_name=config.LANGCHAIN_COLLECTION_NAME))
        results = run_evaluation(rag, delay=args.delay)
        csv_file = write_results(results, args.out_dir)
    except Exception as e:
        log.exception(f"Evaluation failed: {e}")
        print(f"Evaluation failed: {e}", file=sys.stderr)
        return 1

    print(f"Results saved to: {csv_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
