#!/usr/bin/env python3
"""
对战脚本

Usage:
    python scripts/play.py --mode watch               # 观看 BOT 对战
    python scripts/play.py --mode play                # 与 BOT 对战
    python scripts/play.py --mode watch --realtime    # 按真实延迟观看
    python scripts/play.py --mode watch --rounds 3 --jokers 4 --seed 7
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# 添加项目根目录到路径
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenko import (
    GameRuleConfig,
    Intent,
    IntentType,
    Phase,
    RoundState,
    RuleEngine,
    ScoreResult,
    cards_to_str,
    str_to_cards,
)
from table import Match, ManualScheduler, RoundEngine, ThreadScheduler, TimingConfig

logger = logging.getLogger(__name__)

HUMAN_ID = "you"


def parse_args():
    parser = argparse.ArgumentParser(description="Dotenko Play")

    parser.add_argument(
        "--mode",
        type=str,
        default="watch",
        choices=["watch", "play"],
        help="Mode: watch bots or play against bots",
    )
    parser.add_argument("--bots", type=int, default=3, help="Number of bot players")
    parser.add_argument("--rounds", type=int, default=None, help="Rounds per match")
    parser.add_argument("--jokers", type=int, default=None, help="Joker count (0-4)")
    parser.add_argument("--rate", type=int, default=None, help="Base rate")
    parser.add_argument("--max-score", type=str, default=None, help="Max score per round or 'unlimited'")
    parser.add_argument("--extended", action="store_true", help="Allow extended multi-card plays")
    parser.add_argument("--challenge", action="store_true", help="Challenge zone after every dotenko")
    parser.add_argument("--revenge", action="store_true", help="Open a revenge window after every dotenko")
    parser.add_argument("--realtime", action="store_true", help="Watch with real bot delays")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    return parser.parse_args()


def build_config(args) -> GameRuleConfig:
    """命令行参数 -> 规则配置"""
    overrides = {
        "round_count": args.rounds,
        "joker_count": args.jokers,
        "base_rate": args.rate,
        "max_score": args.max_score,
        "extended_plays": args.extended or None,
        "challenge_after_dotenko": args.challenge or None,
        "allow_revenge": args.revenge or None,
    }
    return GameRuleConfig.from_dict({k: v for k, v in overrides.items() if v is not None})


def print_state(state: RoundState, viewer: Optional[str] = None):
    """打印局面 (只公开 viewer 的手牌)"""
    print("\n" + "=" * 60)
    print(
        f"场牌: {state.field_top}  (x{state.up_rate}, 牌堆 {len(state.deck)} 张, "
        f"重洗 {state.deck.cycle} 次)"
    )
    print("-" * 60)
    for p in state.players:
        marker = ">" if p.player_id == state.acting_player else " "
        if viewer is None or p.player_id == viewer:
            totals = RuleEngine.hand_totals(p.hand)
            print(f"{marker}[{p.player_id}] 手牌 ({p.hand_size}): {cards_to_str(p.hand)}  合计 {list(totals)}")
        else:
            print(f"{marker} {p.player_id}  手牌数: {p.hand_size}")
    print("=" * 60)


def print_result(result: ScoreResult):
    """打印结算"""
    print("\n" + "=" * 60)
    if result.is_exhausted:
        print("牌堆耗尽，本局无胜者")
    else:
        print(f"结局: {result.outcome.value}")
        print(f"胜者: {', '.join(result.winners)}   败者: {', '.join(result.losers)}")
        print(f"结算牌: {result.settlement_card}  连续特殊牌: {cards_to_str(result.consecutive_cards) or '-'}")
        if result.is_reversed:
            print("黑 3 逆转!")
        print(
            f"{result.base_rate} x {result.up_rate} x {result.final_number} = {result.transfer}"
        )
    print("=" * 60)


def attach_printers(engine: RoundEngine):
    """挂接阶段变化与结算通知"""
    def on_phase(old: Phase, new: Phase, state: RoundState):
        if new == Phase.DOTENKO_PROCESSING:
            print(f"\n*** {state.dotenko_winner_id} どてんこ! (场牌 {state.field_top}) ***")
        elif new == Phase.CHALLENGE:
            print(f"\n*** チャレンジゾーン: {', '.join(state.challenge_participants)} ***")
        elif new == Phase.SETTLING and state.burst_player_id:
            print(f"\n*** {state.burst_player_id} バースト! ***")

    engine.on_phase_change.append(on_phase)
    engine.on_score_settled.append(lambda result, state: print_result(result))


def watch_game(args, config: GameRuleConfig):
    """观看 BOT 对战"""
    player_ids = [f"bot_{i + 1}" for i in range(args.bots)]

    if args.realtime:
        match = Match(player_ids, config, scheduler=ThreadScheduler(), seed=args.seed)
    else:
        match = Match(player_ids, config, timing=TimingConfig.instant(), seed=args.seed)
    match.on_round_start.append(attach_printers)

    while not match.is_finished:
        print(f"\n{'=' * 60}")
        print(f"Round {match.rounds_played + 1}/{config.round_count}")
        print("=" * 60)

        if args.realtime:
            engine = match.new_round()
            engine.start()
            print_state(engine.current_snapshot())
            engine.wait_until_finished()
            match.record(engine)
        else:
            match.play_round()

    print(f"\n{match.result}")
    match.scheduler.shutdown()


def prompt_intent(state: RoundState, options: List[IntentType]) -> Optional[Intent]:
    """
    读取人类输入

    Returns:
        Intent，或 None 表示等待 (仅在不必行动时)
    """
    plays = []
    if IntentType.PLAY in options:
        plays = RuleEngine.legal_plays(
            state.player(HUMAN_ID).hand, state.field_top, extended=state.config.extended_plays
        )

    print("\n可选动作:")
    if IntentType.DECLARE in options:
        print("  !: どてんこ宣言")
    for i, cards in enumerate(plays):
        print(f"  {i}: 出 {cards_to_str(cards)}")
    if IntentType.DRAW in options:
        print("  d: 摸牌")
    if IntentType.PASS in options:
        print("  p: 过")
    if IntentType.BURST in options:
        print("  b: 爆牌")
    must_act = options != [IntentType.DECLARE]
    if not must_act:
        print("  (回车): 继续")

    while True:
        choice = input("\n请输入 (或 'q' 退出): ").strip()
        if choice.lower() == "q":
            raise KeyboardInterrupt
        if not choice:
            if not must_act:
                return None
            print("轮到你行动")
            continue
        if choice == "!":
            return Intent.declare(HUMAN_ID)
        if choice.lower() == "d":
            return Intent.draw(HUMAN_ID)
        if choice.lower() == "p":
            return Intent.pass_turn(HUMAN_ID)
        if choice.lower() == "b":
            return Intent.burst(HUMAN_ID)
        if choice.isdigit():
            idx = int(choice)
            if 0 <= idx < len(plays):
                return Intent.play(HUMAN_ID, plays[idx])
            print("无效选择，请重试")
            continue
        try:
            return Intent.play(HUMAN_ID, str_to_cards(choice))
        except (ValueError, KeyError):
            print("无法解析，例: 's7 h7'")


def play_round(match: Match, scheduler: ManualScheduler):
    """与 BOT 进行一局"""
    engine = match.new_round()
    engine.start()

    while not engine.is_finished:
        state = engine.current_snapshot()
        options = state.available_intents(HUMAN_ID)

        if options:
            print_state(state, viewer=HUMAN_ID)
            intent = prompt_intent(state, options)
            if intent is not None:
                result = engine.submit_intent(HUMAN_ID, intent)
                if not result.accepted:
                    print(f"无效: {result.reason}")
                continue

        # 推进虚拟时钟到下一个 BOT 动作
        due = scheduler.next_due()
        if due is None:
            engine.shutdown()
            raise RuntimeError(f"Round stalled in {state.phase.value}")
        scheduler.advance(due - scheduler.now())

    match.record(engine)


def play_game(args, config: GameRuleConfig):
    """与 BOT 对战"""
    scheduler = ManualScheduler()
    player_ids = [HUMAN_ID] + [f"bot_{i + 1}" for i in range(args.bots)]
    match = Match(player_ids, config, humans=[HUMAN_ID], scheduler=scheduler, seed=args.seed)
    match.on_round_start.append(attach_printers)

    try:
        while not match.is_finished:
            print(f"\n{'=' * 60}")
            print(f"Round {match.rounds_played + 1}/{config.round_count}")
            print("=" * 60)
            play_round(match, scheduler)
    except KeyboardInterrupt:
        print("\n退出游戏")
        return

    print(f"\n{match.result}")
    rank = next(p.rank for p in match.players if p.player_id == HUMAN_ID)
    print("恭喜你赢了!" if rank == 1 else f"你的名次: {rank}")


def main():
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
    )

    print("=" * 60)
    print("Dotenko どてんこ")
    print("=" * 60)

    config = build_config(args)
    if args.mode == "watch":
        watch_game(args, config)
    elif args.mode == "play":
        play_game(args, config)


if __name__ == "__main__":
    main()
