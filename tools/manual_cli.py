# tools/manual_cli.py
from __future__ import annotations
import argparse, json, logging, sys
from pathlib import Path

from exam_core.config import load_config
from exam_core.engine import SessionRegistry
from exam_core.errors import ExamSessionError, InvalidState
from exam_core.llm_bridge import grader_from_config
from exam_core.reporting import candidate_view
from exam_core.types import MultipleChoiceAnswer, MultipleChoiceQuestion, OpenEndedAnswer
from exam_core.validators import parse_exam

def _ask_int(prompt: str):
    s = input(prompt).strip()
    if s == "": return None
    try: return int(s)
    except ValueError: return None

def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Take an exam from a JSON file in the terminal.")
    ap.add_argument("exam", type=Path, help="exam JSON (id, title, questions, pass_mark, time_limit_minutes)")
    ap.add_argument("--candidate", default="cli_candidate")
    ap.add_argument("--audit", action="store_true", help="print the audit view at the end")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="[%(levelname)s] %(message)s")

    try:
        exam = parse_exam(json.loads(args.exam.read_text(encoding="utf-8")))
    except (OSError, ValueError, ExamSessionError) as e:
        print(f"Cannot load exam: {e}", file=sys.stderr); return 2

    reg = SessionRegistry(grader=grader_from_config(load_config()))
    reg.register_exam(exam)
    sid = reg.assign(args.candidate, exam.id).id
    reg.start(sid)
    print(f"{exam.title}: {len(exam.questions)} questions, {exam.time_limit_minutes} min, pass mark {exam.pass_mark}%")

    try:
        for n, q in enumerate(exam.questions, start=1):
            left = reg.machine(sid).countdown
            print(f"\n[{n}/{len(exam.questions)}] ({left.format_mmss() if left else '--:--'} left) {q.text}")
            if isinstance(q, MultipleChoiceQuestion):
                for i, opt in enumerate(q.options): print(f"  {i}: {opt}")
                reg.record_answer(sid, MultipleChoiceAnswer(q.id, _ask_int("Choose index (blank to skip): ")))
            else:
                reg.record_answer(sid, OpenEndedAnswer(q.id, input("Your answer: ").strip()))
        reg.complete(sid, "manual_submit")
    except InvalidState:
        print("\nTime is up; your answers were submitted automatically.")

    final = reg.get(sid)
    print(json.dumps(reg.audit(sid) if args.audit else candidate_view(final), indent=2, default=str))
    return 0

if __name__ == "__main__":
    sys.exit(main())
