#!/usr/bin/env python3
"""
Concurrent load test for the experiment flow.

Each simulated participant runs start -> consent -> 3x (exposure, survey)
-> comparison -> demographics. Run the server with RECOMMENDER_BACKEND=static
unless the OpenAI quota is meant to be part of the test.

Usage examples:
  python tests/load_test_experiment.py --concurrency 20 --iterations 100
  python tests/load_test_experiment.py --base http://10.0.0.5:5002 --jitter-ms 300
"""

import argparse
import asyncio
import random
import time
from collections import Counter
from typing import List

import httpx

from common import (
    make_comparison_payload, make_demographics_payload, make_persona_payload,
    make_survey_payload, percentiles,
)


def _err_excerpt(resp) -> str:
    try:
        j = resp.json()
        # common error envelope from our API
        if isinstance(j, dict):
            err = j.get('error') or j.get('message') or j
            return str(err)[:200]
        return str(j)[:200]
    except Exception:
        t = getattr(resp, 'text', '')
        return (t or '')[:200]


async def one_participant(base_url: str, results: List[float], errors: List[str],
                          user_id: int, jitter_ms: int = 0):
    timeout = httpx.Timeout(120.0, connect=30.0)
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        try:
            t0 = time.perf_counter()
            r = await client.post('/api/experiment/start',
                                  json=make_persona_payload(name=f'Load{user_id}'))
            if r.status_code != 200:
                errors.append(f"start:{r.status_code}:{_err_excerpt(r)}")
                return
            started = r.json()
            api = f"/api/experiment/{started['id']}"

            steps = [('PATCH', '/step', {'step': 1})]
            for position, condition in enumerate(started['experimentOrder']['sequence'], start=1):
                steps.append(('PATCH', '/step', {'step': 2 * position}))
                steps.append(('POST', '/survey', make_survey_payload(condition, position)))
            steps.append(('POST', '/comparison', make_comparison_payload()))
            steps.append(('POST', '/demographics', make_demographics_payload()))

            for method, path, body in steps:
                if jitter_ms and jitter_ms > 0:
                    # Think time between screens
                    await asyncio.sleep(random.random() * (jitter_ms / 1000.0))
                r = await client.request(method, api + path, json=body)
                if r.status_code != 200:
                    errors.append(f"{path.strip('/')}:{r.status_code}:{_err_excerpt(r)}")
                    return

            t1 = time.perf_counter()
            results.append((t1 - t0) * 1000.0)  # ms
        except Exception as e:
            errors.append(f"exc:{type(e).__name__}:{e}")


async def run_load(base: str, concurrency: int, iterations: int, jitter_ms: int) -> None:
    results: List[float] = []
    errors: List[str] = []

    # Spread iterations across waves of concurrency
    launched = 0
    while launched < iterations:
        wave = min(concurrency, iterations - launched)
        tasks = [one_participant(base, results, errors, launched + i + 1, jitter_ms=jitter_ms)
                 for i in range(wave)]
        await asyncio.gather(*tasks)
        launched += wave

    ok = len(results)
    err = len(errors)
    print("\n===== Load Test Summary =====")
    print(f"Total participants: {ok + err}")
    print(f"Success:            {ok}")
    print(f"Errors:             {err}")
    if err:
        print("Top errors:")
        for k, v in Counter(errors).most_common(5):
            print(f"  {k}: {v}")

    if results:
        p = percentiles(results, (50, 90, 95, 99))
        print("Latency (ms) for the full flow (start -> demographics):")
        print(f"  p50: {p[50]:.1f}  p90: {p[90]:.1f}  p95: {p[95]:.1f}  p99: {p[99]:.1f}")
        print(f"  min: {min(results):.1f}  max: {max(results):.1f}  avg: {sum(results)/len(results):.1f}")
    print("============================\n")


def main():
    ap = argparse.ArgumentParser(description='Concurrent load test for the experiment flow')
    ap.add_argument('--base', default=None, help='Base URL (overrides --host/--port)')
    ap.add_argument('--host', default='127.0.0.1')
    ap.add_argument('--port', default='5002')
    ap.add_argument('--concurrency', type=int, default=20, help='Concurrent participants in a wave')
    ap.add_argument('--iterations', type=int, default=50, help='Total participant flows to run')
    ap.add_argument('--jitter-ms', type=int, default=0, help='Random delay up to N ms before each request')
    args = ap.parse_args()

    base = args.base or f"http://{args.host}:{args.port}"
    asyncio.run(run_load(base, args.concurrency, args.iterations, args.jitter_ms))


if __name__ == '__main__':
    main()
