#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

API_BASE = os.environ.get('SUPPORT_API_BASE', 'http://127.0.0.1:8000')

TEXT_EXTENSIONS = {'.txt', '.md', '.csv', '.json'}


def _request(method: str, path: str, body: dict | None = None, session_id: str | None = None) -> dict | list:
    data = None
    headers = {'content-type': 'application/json'}
    if session_id:
        headers['X-Session-Id'] = session_id
    if body is not None:
        data = json.dumps(body).encode('utf-8')
    req = urllib.request.Request(f'{API_BASE}{path}', data=data, method=method.upper(), headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=60) as resp:
            raw = resp.read().decode('utf-8')
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode('utf-8', errors='ignore')
        raise RuntimeError(f'HTTP {exc.code} {path}: {detail}') from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f'Failed to reach API at {API_BASE}: {exc}') from exc


def ask_once(question: str, session_id: str) -> dict:
    return _request('POST', '/api/chat', {'question': question}, session_id=session_id)


def print_answer(resp: dict) -> None:
    print('\n=== Answer ===')
    print(resp.get('answer', ''))
    print(f"\nType: {resp.get('type')}  Confidence: {resp.get('confidence')}")
    if resp.get('escalation'):
        thread = resp.get('thread_ts') or 'not posted'
        print(f'Escalated to support (thread {thread}). Replies arrive on the session websocket.')

    sources = resp.get('sources', [])
    if sources:
        print('\n=== Sources ===')
        for i, s in enumerate(sources, start=1):
            print(f"{i}. [{s.get('type')}] {s.get('source')}")

    analysis = resp.get('order_analysis') or {}
    if analysis.get('is_order_related'):
        ids = ', '.join(analysis.get('order_ids') or []) or 'none'
        print(f"\nOrder query: ids={ids} urgency={analysis.get('urgency')} action={analysis.get('recommended_action')}")


def chat_loop(session_id: str) -> None:
    print(f'Chat mode started. Session={session_id}. Type "exit" to quit.')
    while True:
        try:
            question = input('\nYou> ').strip()
        except (EOFError, KeyboardInterrupt):
            print('\nExiting chat.')
            return
        if not question:
            continue
        if question.lower() in {'exit', 'quit'}:
            print('Exiting chat.')
            return
        print_answer(ask_once(question, session_id))


def print_learned(limit: int) -> None:
    pairs = _request('GET', f'/api/learning/qa-pairs?{urllib.parse.urlencode({"limit": limit})}')
    if not pairs:
        print('No learned answers yet.')
        return
    for pair in pairs:
        print(f"\nQ: {pair['question']}")
        print(f"A: {pair['answer']}")
        print(f"   used {pair['usage_count']}x, answered by {pair.get('answered_by') or 'unknown'}")


def print_debug() -> None:
    snap = _request('GET', '/api/debug/connections')
    print(
        f"sessions={snap['total_sessions']} connections={snap['total_connections']} "
        f"pending={snap['total_pending']} threads={len(snap.get('threads', []))}"
    )
    for session in snap.get('sessions', []):
        alive = sum(1 for c in session['connections'] if c['alive'])
        print(f"- {session['session_id']}: {len(session['connections'])} conn ({alive} alive), {session['pending']} pending")


def ingest_path(path: Path) -> None:
    files = [path] if path.is_file() else sorted(p for p in path.rglob('*') if p.is_file())
    for file in files:
        if file.suffix.lower() not in TEXT_EXTENSIONS:
            print(f'skip {file} (unsupported type)')
            continue
        content = file.read_text(encoding='utf-8', errors='ignore')
        if not content.strip():
            continue
        resp = _request('POST', '/api/documents', {'content': content, 'source': file.name, 'title': file.stem})
        print(f"{file}: {resp.get('chunks', 0)} chunks")


def main() -> None:
    parser = argparse.ArgumentParser(description='Operator CLI for the support escalation gateway')
    subparsers = parser.add_subparsers(dest='command', required=True)

    ask_parser = subparsers.add_parser('ask', help='Ask one question')
    ask_parser.add_argument('--session-id', default='cli-default')
    ask_parser.add_argument('question')

    chat_parser = subparsers.add_parser('chat', help='Interactive chat loop')
    chat_parser.add_argument('--session-id', default='cli-chat')

    learned_parser = subparsers.add_parser('learned', help='List human-learned answers')
    learned_parser.add_argument('--limit', type=int, default=20)

    subparsers.add_parser('stats', help='Learned answer statistics')
    subparsers.add_parser('debug', help='Show live connections and pending queues')

    ingest_parser = subparsers.add_parser('ingest', help='Add text/markdown/csv files to the document corpus')
    ingest_parser.add_argument('path')

    args = parser.parse_args()

    try:
        if args.command == 'ask':
            print_answer(ask_once(args.question, args.session_id))
        elif args.command == 'chat':
            chat_loop(args.session_id)
        elif args.command == 'learned':
            print_learned(args.limit)
        elif args.command == 'stats':
            print(json.dumps(_request('GET', '/api/learning/stats'), indent=2))
        elif args.command == 'debug':
            print_debug()
        elif args.command == 'ingest':
            ingest_path(Path(args.path))
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
