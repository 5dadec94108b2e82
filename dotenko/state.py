"""
回合状态定义

使用不可变数据结构:
- 每次转移返回新实例，旧快照永不改变
- 线程安全，可直接交给 BOT / 渲染层读取
- 每次转移后检查牌的守恒
"""
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple, Union
import itertools
import random

import numpy as np

from .cards import Card, Deck, build_deck, cards_to_array, full_card_set, array_to_cards, cards_to_str
from .actions import Intent, IntentType
from .config import GameRuleConfig
from .errors import IllegalAction, StaleAction, EmptyDeck, CycleLimitExceeded, InvariantViolation
from .phases import Phase, Outcome, CLOSED_PHASES
from .rules import RuleEngine
from .scoring import ScoringEngine, ScoreResult, SPECIAL_CARD_MULTIPLIER


# チャレンジゾーン最大步数
MAX_CHALLENGE_STEPS = 100


@dataclass(frozen=True)
class Player:
    """
    玩家

    Attributes:
        player_id: 稳定 ID
        is_human: 是否人类玩家
        hand: 手牌 (有序)
        score: 累计得分 (仅结算时变化)
        rank: 名次 (比赛层设置)
        declared: 本局已宣言过 (被推翻后不能再宣言)
        has_drawn_this_turn: 本回合已摸牌
    """
    player_id: str
    is_human: bool = False
    hand: Tuple[Card, ...] = ()
    score: int = 0
    rank: int = 0
    declared: bool = False
    has_drawn_this_turn: bool = False

    @property
    def hand_size(self) -> int:
        return len(self.hand)

    def __str__(self) -> str:
        return f"{self.player_id}[{cards_to_str(self.hand)}]"


@dataclass(frozen=True)
class RoundState:
    """
    不可变回合状态

    Attributes:
        phase: 阶段
        players: 玩家 (座位顺序)
        config: 规则配置
        current_turn: 出牌回合的玩家
        field: 场牌 (最后一张为顶牌)
        deck: 牌堆
        field_owner: 打出顶牌的玩家 (开局翻出的牌为 None)
        up_rate: 上升倍率
        consecutive_value: 最近出牌的数字
        consecutive_count: 连续同数字张数
        rate_cards: 推高倍率的牌
        dotenko_winner_id: 当前胜者
        overturned_ids: 被リベンジ/挑战推翻的宣言者
        shotenko_claimant_id: しょてんこ宣言者
        burst_player_id: 爆牌玩家
        revenge_eligible_players: 可リベンジ的玩家
        challenge_participants: 挑战参加者 (行动顺序)
        challenge_turn: 当前挑战者
        challenge_steps: 挑战已进行的摸牌次数
        outcome: 结局
        version: 每次转移 +1，用于识别过期的定时动作
        score_result: 结算结果
    """
    phase: Phase
    players: Tuple[Player, ...]
    config: GameRuleConfig
    current_turn: str

    field: Tuple[Card, ...] = ()
    deck: Deck = Deck(())
    field_owner: Optional[str] = None

    up_rate: int = 1
    consecutive_value: Optional[int] = None
    consecutive_count: int = 0
    rate_cards: Tuple[Card, ...] = ()

    dotenko_winner_id: Optional[str] = None
    overturned_ids: Tuple[str, ...] = ()
    shotenko_claimant_id: Optional[str] = None
    burst_player_id: Optional[str] = None

    revenge_eligible_players: Tuple[str, ...] = ()
    challenge_participants: Tuple[str, ...] = ()
    challenge_turn: Optional[str] = None
    challenge_steps: int = 0

    outcome: Optional[Outcome] = None
    version: int = 0
    score_result: Optional[ScoreResult] = None

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def player_ids(self) -> Tuple[str, ...]:
        return tuple(p.player_id for p in self.players)

    @property
    def field_top(self) -> Optional[Card]:
        return self.field[-1] if self.field else None

    @property
    def acting_player(self) -> Optional[str]:
        """当前应行动的玩家 (挑战阶段为挑战者)"""
        if self.phase == Phase.PLAYING:
            return self.current_turn
        if self.phase == Phase.CHALLENGE:
            return self.challenge_turn
        return None

    @property
    def is_finished(self) -> bool:
        return self.phase == Phase.FINISHED

    def find_player(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def player(self, player_id: str) -> Player:
        """
        获取玩家

        Raises:
            IllegalAction: 未知玩家
        """
        p = self.find_player(player_id)
        if p is None:
            raise IllegalAction(f"unknown player {player_id}")
        return p

    def seat_of(self, player_id: str) -> int:
        return self.player_ids.index(player_id)

    def next_player_id(self, player_id: str) -> str:
        """座位顺序的下一位"""
        ids = self.player_ids
        return ids[(ids.index(player_id) + 1) % len(ids)]

    def has_legal_play(self, player_id: str) -> bool:
        return RuleEngine.has_legal_play(
            self.player(player_id).hand, self.field_top, self.config.extended_plays
        )

    def available_intents(self, player_id: str) -> List[IntentType]:
        """玩家此刻可以提交的意图类型 (供界面提示)"""
        player = self.find_player(player_id)
        if player is None or self.phase in CLOSED_PHASES:
            return []

        result = []
        if RuleEngine.can_declare(self, player_id):
            result.append(IntentType.DECLARE)

        if self.phase == Phase.PLAYING and player_id == self.current_turn:
            at_limit = player.hand_size >= self.config.hand_limit
            if self.has_legal_play(player_id):
                result.append(IntentType.PLAY)
            if not player.has_drawn_this_turn and not at_limit:
                result.append(IntentType.DRAW)
            if player.has_drawn_this_turn or at_limit:
                result.append(IntentType.PASS)
            if at_limit and IntentType.PLAY not in result:
                result.append(IntentType.BURST)
        elif self.phase == Phase.CHALLENGE and player_id == self.challenge_turn:
            if player.has_drawn_this_turn:
                result.append(IntentType.PASS)
            else:
                result.append(IntentType.DRAW)
        return result

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    def _commit(self, **changes) -> 'RoundState':
        """生成新版本并检查不变量"""
        new_state = replace(self, version=self.version + 1, **changes)
        new_state.check_invariants()
        return new_state

    def _update_player(
        self,
        players: Sequence[Player],
        player_id: str,
        **changes,
    ) -> Tuple[Player, ...]:
        return tuple(
            replace(p, **changes) if p.player_id == player_id else p
            for p in players
        )

    @staticmethod
    def _clear_drawn(players: Sequence[Player]) -> Tuple[Player, ...]:
        return tuple(
            replace(p, has_drawn_this_turn=False) if p.has_drawn_this_turn else p
            for p in players
        )

    def _draw_from_deck(self, rng: random.Random) -> Tuple[Card, Deck, Tuple[Card, ...]]:
        """
        摸一张牌，牌堆为空时用场牌重洗

        Raises:
            EmptyDeck / CycleLimitExceeded: 无法补充牌堆
        """
        deck, field = self.deck, self.field
        if deck.is_empty:
            deck, field = deck.reshuffle(field, self.config.deck_cycle_limit, rng)
        card, deck = deck.draw()
        return card, deck, field

    def _revenge_eligible(
        self,
        players: Sequence[Player],
        winner_id: str,
    ) -> Tuple[str, ...]:
        if not self.config.allow_revenge:
            return ()
        top = self.field_top
        return tuple(
            p.player_id for p in players
            if p.player_id != winner_id
            and not p.declared
            and RuleEngine.can_declare_dotenko(p.hand, top)
        )

    def _challenge_order(
        self,
        players: Sequence[Player],
        winner_id: str,
    ) -> Tuple[str, ...]:
        """挑战参加者，从胜者的下一位开始按座位顺序"""
        top = self.field_top
        n = len(players)
        start = next(i for i, p in enumerate(players) if p.player_id == winner_id)
        result = []
        for offset in range(1, n):
            p = players[(start + offset) % n]
            if p.declared or p.hand_size >= self.config.hand_limit:
                continue
            if RuleEngine.challenge_eligible(p.hand, top):
                result.append(p.player_id)
        return tuple(result)

    @staticmethod
    def _next_in_order(order: Sequence[str], seat_ids: Sequence[str], after: str) -> str:
        """order 中座位位于 after 之后的第一位 (循环)"""
        n = len(seat_ids)
        start = seat_ids.index(after)
        for offset in range(1, n + 1):
            pid = seat_ids[(start + offset) % n]
            if pid in order:
                return pid
        return order[0]

    # ------------------------------------------------------------------
    # 开局
    # ------------------------------------------------------------------

    @classmethod
    def initial(
        cls,
        players: Sequence[Union[Player, str]],
        config: Optional[GameRuleConfig] = None,
        first_player: Optional[str] = None,
    ) -> 'RoundState':
        """
        创建开局前的状态

        Args:
            players: 玩家或玩家 ID (座位顺序)
            config: 规则配置
            first_player: 先手玩家，默认座位 0

        Returns:
            waiting 阶段的状态
        """
        roster = tuple(p if isinstance(p, Player) else Player(p) for p in players)
        if len(roster) < 2:
            raise ValueError("Dotenko needs at least 2 players")
        ids = [p.player_id for p in roster]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate player ids: {ids}")
        if first_player is not None and first_player not in ids:
            raise ValueError(f"Unknown first player: {first_player}")

        config = config or GameRuleConfig()
        needed = len(roster) * config.initial_hand_size + 1
        if needed > 52 + config.joker_count:
            raise ValueError(f"Not enough cards to deal {len(roster)} players")

        # 新的一局: 清空上局的手牌与标志，保留累计得分
        roster = tuple(
            replace(p, hand=(), declared=False, has_drawn_this_turn=False)
            for p in roster
        )
        return cls(
            phase=Phase.WAITING,
            players=roster,
            config=config,
            current_turn=first_player or ids[0],
        )

    def with_dealing(self) -> 'RoundState':
        """waiting -> dealing"""
        if self.phase != Phase.WAITING:
            raise StaleAction(f"cannot start dealing in {self.phase.value}")
        return replace(self, phase=Phase.DEALING, version=self.version + 1)

    def with_deal(self, rng: random.Random) -> 'RoundState':
        """
        发牌并翻开场牌

        - 每人 initial_hand_size 张
        - 翻出的场牌为 1/2/王 时倍率翻倍，再翻一张
        - 有人手牌合计等于场牌数字时即为しょてんこ，进入挑战阶段

        Args:
            rng: 随机源

        Returns:
            playing / challenge / settling 阶段的状态
        """
        if self.phase not in (Phase.WAITING, Phase.DEALING):
            raise StaleAction(f"cannot deal in {self.phase.value}")

        config = self.config
        deck = build_deck(config.joker_count, rng)

        hands: Dict[str, List[Card]] = {pid: [] for pid in self.player_ids}
        for _ in range(config.initial_hand_size):
            for pid in self.player_ids:
                card, deck = deck.draw()
                hands[pid].append(card)

        starter, deck = deck.draw()
        field = [starter]
        up_rate = 1
        rate_cards = []
        while field[-1].is_up_rate_card():
            up_rate = ScoringEngine.safe_multiply(up_rate, SPECIAL_CARD_MULTIPLIER)
            rate_cards.append(field[-1])
            if deck.is_empty:
                break
            card, deck = deck.draw()
            field.append(card)

        players = tuple(
            replace(p, hand=tuple(hands[p.player_id]), declared=False, has_drawn_this_turn=False)
            for p in self.players
        )
        dealt = replace(
            self,
            phase=Phase.PLAYING,
            players=players,
            field=tuple(field),
            deck=deck,
            field_owner=None,
            up_rate=up_rate,
            rate_cards=tuple(rate_cards),
        )

        # しょてんこ判定
        top = dealt.field_top
        claimant = next(
            (p.player_id for p in players if RuleEngine.can_declare_dotenko(p.hand, top)),
            None,
        )
        if claimant is None:
            return dealt._commit()

        players = dealt._update_player(players, claimant, declared=True)
        participants = dealt._challenge_order(players, claimant)
        return dealt._commit(
            phase=Phase.CHALLENGE if participants else Phase.SETTLING,
            players=players,
            dotenko_winner_id=claimant,
            shotenko_claimant_id=claimant,
            outcome=Outcome.SHOTENKO,
            challenge_participants=participants,
            challenge_turn=participants[0] if participants else None,
        )

    # ------------------------------------------------------------------
    # 意图
    # ------------------------------------------------------------------

    def with_intent(self, intent: Intent, rng: random.Random) -> 'RoundState':
        """
        执行玩家意图

        校验顺序: 阶段 -> 回合 -> 规则

        Args:
            intent: 意图
            rng: 随机源 (牌堆重洗)

        Returns:
            新状态

        Raises:
            StaleAction: 当前阶段或回合不接受该意图
            IllegalAction: 不符合规则
        """
        pid = intent.player_id
        self.player(pid)

        if self.phase in CLOSED_PHASES:
            raise StaleAction(f"{self.phase.value} does not accept intents")

        if intent.intent_type == IntentType.DECLARE:
            return self.with_declare(pid)

        if self.phase == Phase.PLAYING:
            if pid != self.current_turn:
                raise StaleAction(f"not {pid}'s turn")
            if intent.intent_type == IntentType.PLAY:
                return self.with_play(pid, intent.cards)
            if intent.intent_type == IntentType.DRAW:
                return self.with_draw(pid, rng)
            if intent.intent_type == IntentType.PASS:
                return self.with_pass(pid)
            if intent.intent_type == IntentType.BURST:
                return self.with_burst(pid)

        if self.phase == Phase.CHALLENGE:
            if pid != self.challenge_turn:
                raise StaleAction(f"not {pid}'s challenge turn")
            if intent.intent_type == IntentType.DRAW:
                return self.with_challenge_draw(pid, rng)
            if intent.intent_type == IntentType.PASS:
                return self.with_challenge_pass(pid)

        raise StaleAction(f"{intent.intent_type.name.lower()} not accepted in {self.phase.value}")

    def _declare_refusal(self, player_id: str) -> str:
        player = self.player(player_id)
        if self.phase == Phase.PLAYING and player_id == self.field_owner:
            return "cannot declare on own card"
        if player_id == self.dotenko_winner_id:
            return "already the winner"
        if player.declared:
            return "already declared this round"
        if self.phase == Phase.DOTENKO_PROCESSING and not self.config.allow_revenge:
            return "revenge is not allowed"
        return "hand total does not match field"

    def with_declare(self, player_id: str) -> 'RoundState':
        """
        どてんこ / リベンジ / 挑战中宣言

        Raises:
            IllegalAction: 不满足宣言条件
        """
        if not RuleEngine.can_declare(self, player_id):
            raise IllegalAction(self._declare_refusal(player_id))

        players = self._update_player(
            self._clear_drawn(self.players), player_id, declared=True
        )

        if self.phase == Phase.PLAYING:
            return self._commit(
                phase=Phase.DOTENKO_PROCESSING,
                players=players,
                dotenko_winner_id=player_id,
                outcome=Outcome.DOTENKO,
                revenge_eligible_players=self._revenge_eligible(players, player_id),
            )

        overturned = self.overturned_ids + (self.dotenko_winner_id,)

        if self.phase == Phase.DOTENKO_PROCESSING:
            return self._commit(
                players=players,
                dotenko_winner_id=player_id,
                overturned_ids=overturned,
                revenge_eligible_players=self._revenge_eligible(players, player_id),
            )

        # 挑战中宣言: 取代当前胜者，挑战从新胜者下一位继续
        participants = self._challenge_order(players, player_id)
        return self._commit(
            phase=Phase.CHALLENGE if participants else Phase.SETTLING,
            players=players,
            dotenko_winner_id=player_id,
            overturned_ids=overturned,
            challenge_participants=participants,
            challenge_turn=participants[0] if participants else None,
        )

    def with_play(self, player_id: str, cards: Sequence[Card]) -> 'RoundState':
        """
        出牌

        牌按给定顺序放到场上，逐张更新连续计数与倍率
        """
        player = self.player(player_id)
        allowed, reason = RuleEngine.can_play(
            cards, self.field_top, player.hand, self.config.extended_plays
        )
        if not allowed:
            raise IllegalAction(reason)

        played = set(cards)
        new_hand = tuple(c for c in player.hand if c not in played)
        up_rate, value, count, triggered = ScoringEngine.apply_stack_rate(
            cards,
            self.up_rate,
            self.consecutive_value,
            self.consecutive_count,
            self.config.up_rate_threshold,
        )

        players = self._update_player(self._clear_drawn(self.players), player_id, hand=new_hand)
        return self._commit(
            players=players,
            field=self.field + tuple(cards),
            field_owner=player_id,
            current_turn=self.next_player_id(player_id),
            up_rate=up_rate,
            consecutive_value=value,
            consecutive_count=count,
            rate_cards=self.rate_cards + triggered,
        )

    def _exhausted(self) -> 'RoundState':
        """牌堆耗尽: 出牌阶段无胜者结束，挑战阶段以当前胜者结算"""
        players = self._clear_drawn(self.players)
        if self.phase == Phase.CHALLENGE:
            return self._commit(
                phase=Phase.SETTLING,
                players=players,
                challenge_participants=(),
                challenge_turn=None,
            )
        return self._commit(
            phase=Phase.SETTLING,
            players=players,
            outcome=Outcome.EXHAUSTED,
        )

    def with_draw(self, player_id: str, rng: random.Random) -> 'RoundState':
        """摸牌 (每回合一次，手牌未满时)"""
        player = self.player(player_id)
        if player.has_drawn_this_turn:
            raise IllegalAction("already drew this turn")
        if player.hand_size >= self.config.hand_limit:
            raise IllegalAction("hand is full")

        try:
            card, deck, field = self._draw_from_deck(rng)
        except (EmptyDeck, CycleLimitExceeded):
            return self._exhausted()

        players = self._update_player(
            self.players, player_id,
            hand=player.hand + (card,),
            has_drawn_this_turn=True,
        )
        return self._commit(players=players, deck=deck, field=field)

    def with_pass(self, player_id: str) -> 'RoundState':
        """过 (已摸牌后，或手牌已满时；满手牌过牌即爆牌)"""
        player = self.player(player_id)
        if player.hand_size >= self.config.hand_limit:
            return self._burst(player_id)
        if not player.has_drawn_this_turn:
            raise IllegalAction("must draw before passing")

        return self._commit(
            players=self._clear_drawn(self.players),
            current_turn=self.next_player_id(player_id),
        )

    def with_burst(self, player_id: str) -> 'RoundState':
        """爆牌 (手牌已满且无牌可出)"""
        player = self.player(player_id)
        if player.hand_size < self.config.hand_limit:
            raise IllegalAction("hand is not full")
        if self.has_legal_play(player_id):
            raise IllegalAction("a legal play is available")
        return self._burst(player_id)

    def _burst(self, player_id: str) -> 'RoundState':
        return self._commit(
            phase=Phase.SETTLING,
            players=self._clear_drawn(self.players),
            burst_player_id=player_id,
            outcome=Outcome.BURST,
        )

    # ------------------------------------------------------------------
    # リベンジ窗口 / 挑战
    # ------------------------------------------------------------------

    def close_revenge_window(self) -> 'RoundState':
        """
        关闭リベンジ窗口

        challenge_after_dotenko 且有参加者时进入挑战，否则进入结算
        """
        if self.phase != Phase.DOTENKO_PROCESSING:
            raise StaleAction(f"no revenge window in {self.phase.value}")

        participants = ()
        if self.config.challenge_after_dotenko:
            participants = self._challenge_order(self.players, self.dotenko_winner_id)

        return self._commit(
            phase=Phase.CHALLENGE if participants else Phase.SETTLING,
            players=self._clear_drawn(self.players),
            revenge_eligible_players=(),
            challenge_participants=participants,
            challenge_turn=participants[0] if participants else None,
        )

    def _advance_challenge(
        self,
        players: Tuple[Player, ...],
        from_player: str,
        steps: int,
        **changes,
    ) -> 'RoundState':
        """挑战轮转到下一位；无人可挑战或超过步数上限时进入结算"""
        players = self._clear_drawn(players)
        participants = self._challenge_order(players, self.dotenko_winner_id)
        if not participants or steps >= MAX_CHALLENGE_STEPS:
            return self._commit(
                phase=Phase.SETTLING,
                players=players,
                challenge_participants=(),
                challenge_turn=None,
                challenge_steps=steps,
                **changes,
            )
        return self._commit(
            players=players,
            challenge_participants=participants,
            challenge_turn=self._next_in_order(participants, self.player_ids, from_player),
            challenge_steps=steps,
            **changes,
        )

    def with_challenge_draw(self, player_id: str, rng: random.Random) -> 'RoundState':
        """
        挑战者摸一张

        摸牌后满足条件则等待其宣言或过，否则自动轮到下一位
        """
        player = self.player(player_id)
        if player.has_drawn_this_turn:
            raise IllegalAction("already drew this challenge turn")

        try:
            card, deck, field = self._draw_from_deck(rng)
        except (EmptyDeck, CycleLimitExceeded):
            return self._exhausted()

        steps = self.challenge_steps + 1
        new_hand = player.hand + (card,)
        players = self._update_player(
            self.players, player_id, hand=new_hand, has_drawn_this_turn=True,
        )

        if RuleEngine.can_declare_dotenko(new_hand, self.field_top) and steps < MAX_CHALLENGE_STEPS:
            return self._commit(
                players=players, deck=deck, field=field, challenge_steps=steps,
            )
        return self._advance_challenge(players, player_id, steps, deck=deck, field=field)

    def with_challenge_pass(self, player_id: str) -> 'RoundState':
        """挑战者摸牌后放弃宣言"""
        player = self.player(player_id)
        if not player.has_drawn_this_turn:
            raise IllegalAction("must draw before passing")
        return self._advance_challenge(self.players, player_id, self.challenge_steps)

    # ------------------------------------------------------------------
    # 结算
    # ------------------------------------------------------------------

    def with_settlement(self, result: ScoreResult) -> 'RoundState':
        """应用结算结果，进入 finished"""
        if self.phase != Phase.SETTLING:
            raise StaleAction(f"cannot settle in {self.phase.value}")

        deltas = result.delta_map
        players = tuple(
            replace(p, score=p.score + deltas.get(p.player_id, 0))
            for p in self.players
        )
        return self._commit(
            phase=Phase.FINISHED,
            players=players,
            up_rate=result.up_rate,
            score_result=result,
        )

    # ------------------------------------------------------------------
    # 不变量
    # ------------------------------------------------------------------

    def check_invariants(self) -> None:
        """
        检查不变量

        1. 手牌 + 场牌 + 牌堆 恰好是完整牌组
        2. 手牌数在 [0, hand_limit]
        3. 只有当前行动玩家可以有 has_drawn_this_turn

        Raises:
            InvariantViolation
        """
        if self.phase != Phase.WAITING:
            expected = cards_to_array(full_card_set(self.config.joker_count))
            actual = cards_to_array(itertools.chain(
                itertools.chain.from_iterable(p.hand for p in self.players),
                self.field,
                self.deck.cards,
            ))
            if not np.array_equal(expected, actual):
                diff = actual.astype(np.int32) - expected.astype(np.int32)
                missing = array_to_cards(np.clip(-diff, 0, None))
                extra = array_to_cards(np.clip(diff, 0, None))
                raise InvariantViolation(
                    f"card accounting mismatch: missing [{cards_to_str(missing)}] "
                    f"extra [{cards_to_str(extra)}]"
                )

        limit = self.config.hand_limit
        for p in self.players:
            if not 0 <= p.hand_size <= limit:
                raise InvariantViolation(f"{p.player_id} holds {p.hand_size} cards (limit {limit})")

        acting = self.acting_player
        for p in self.players:
            if p.has_drawn_this_turn and p.player_id != acting:
                raise InvariantViolation(f"{p.player_id} marked as drawn outside its turn")
