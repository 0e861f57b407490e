"""Translation between canonical payment channels and provider vocabularies."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from payment_gateway.models.channels import PaymentChannel


@dataclass(frozen=True)
class ChannelVocabulary:
    """
    A provider's channel vocabulary.

    Attributes:
        mapping: canonical channel -> provider channel
        accepted: provider-native values passed through verbatim; None means
            the vocabulary is open and unknown entries are kept lowercased
        native_case: "lower" or "upper", how native values are compared
        defaults: channels used when the caller gives no restriction
        supports_restriction: False for hosted checkouts with no channel concept
    """

    mapping: Mapping[str, str] = field(default_factory=dict)
    accepted: frozenset[str] | None = frozenset()
    native_case: str = "lower"
    defaults: tuple[str, ...] = ()
    supports_restriction: bool = True

    @property
    def is_open(self) -> bool:
        return self.accepted is None

    def translate(self, channel: str) -> str | None:
        key = channel.strip().lower()
        if not key:
            return None
        if key in self.mapping:
            return self.mapping[key]
        if self.is_open:
            return key
        native = key.upper() if self.native_case == "upper" else key
        return native if native in self.accepted else None


NO_CHANNELS = ChannelVocabulary(supports_restriction=False)

DEFAULT_CHANNEL_VOCABULARIES: Mapping[str, ChannelVocabulary] = MappingProxyType(
    {
        "paystack": ChannelVocabulary(
            mapping={
                "card": "card",
                "bank_transfer": "bank_transfer",
                "ussd": "ussd",
                "mobile_money": "mobile_money",
                "qr_code": "qr",
            },
            accepted=None,
            defaults=("card", "bank_transfer"),
        ),
        "monnify": ChannelVocabulary(
            mapping={
                "card": "CARD",
                "bank_transfer": "ACCOUNT_TRANSFER",
                "ussd": "USSD",
                "mobile_money": "PHONE_NUMBER",
            },
            accepted=frozenset({"CARD", "ACCOUNT_TRANSFER", "USSD", "PHONE_NUMBER"}),
            native_case="upper",
            defaults=("CARD", "ACCOUNT_TRANSFER"),
        ),
        "flutterwave": ChannelVocabulary(
            mapping={
                "card": "card",
                "bank_transfer": "banktransfer",
                "ussd": "ussd",
                "mobile_money": "mobilemoneyghana",
                "qr_code": "nqr",
            },
            accepted=frozenset(
                {
                    "card",
                    "account",
                    "banktransfer",
                    "ussd",
                    "mpesa",
                    "mobilemoneyghana",
                    "mobilemoneyfranco",
                    "mobilemoneyuganda",
                    "mobilemoneyrwanda",
                    "mobilemoneyzambia",
                    "mobilemoneytanzania",
                    "nqr",
                    "barter",
                    "credit",
                    "opay",
                }
            ),
            defaults=("card",),
        ),
        "stripe": ChannelVocabulary(
            mapping={"card": "card", "bank_transfer": "us_bank_account"},
            accepted=frozenset({"card", "us_bank_account", "link", "affirm", "klarna", "cashapp", "paypal"}),
            defaults=("card",),
        ),
        "square": ChannelVocabulary(
            mapping={"card": "CARD", "bank_transfer": "OTHER"},
            accepted=frozenset({"CARD", "CASH", "OTHER", "SQUARE_GIFT_CARD"}),
            native_case="upper",
            defaults=("CARD",),
        ),
        "mollie": ChannelVocabulary(
            mapping={"card": "creditcard", "bank_transfer": "banktransfer", "mobile_money": "paypal"},
            accepted=frozenset(
                {
                    "creditcard",
                    "ideal",
                    "bancontact",
                    "sofort",
                    "giropay",
                    "eps",
                    "klarnapaylater",
                    "klarnasliceit",
                    "paypal",
                    "applepay",
                    "banktransfer",
                    "giftcard",
                    "przelewy24",
                    "kbc",
                    "belfius",
                    "mybank",
                    "in3",
                }
            ),
            defaults=("creditcard",),
        ),
        "paypal": NO_CHANNELS,
        "nowpayments": NO_CHANNELS,
    }
)

FALLBACK_DEFAULT_CHANNELS = ("card",)


class ChannelMapper:
    """
    Maps canonical channels onto each provider's own channel names.

    Closed vocabularies drop entries they do not recognize; Paystack's is
    open and keeps them (lowercased). Providers without a channel concept,
    and providers with no registered vocabulary, never receive a restriction.
    """

    def __init__(self, vocabularies: Mapping[str, ChannelVocabulary] | None = None) -> None:
        self._vocabularies = MappingProxyType(dict(vocabularies or DEFAULT_CHANNEL_VOCABULARIES))

    def _vocabulary(self, provider: str | None) -> ChannelVocabulary | None:
        if not provider:
            return None
        return self._vocabularies.get(provider.lower())

    def map_channels(self, channels: Iterable[str] | None, provider: str) -> list[str] | None:
        """
        Translate canonical channels into the provider's vocabulary.

        Returns:
            Ordered, de-duplicated provider channel names, or None when the
            channel-restriction field should be omitted entirely
        """
        if not channels:
            return None

        vocabulary = self._vocabulary(provider)
        if vocabulary is None or not vocabulary.supports_restriction:
            return None

        mapped: list[str] = []
        for channel in channels:
            if not channel:
                continue
            translated = vocabulary.translate(str(channel))
            if translated and translated not in mapped:
                mapped.append(translated)

        return mapped or None

    def get_default_channels(self, provider: str) -> list[str]:
        vocabulary = self._vocabulary(provider)
        if vocabulary is None:
            return list(FALLBACK_DEFAULT_CHANNELS)
        return list(vocabulary.defaults)

    def supports_channels(self, provider: str) -> bool:
        vocabulary = self._vocabulary(provider)
        return vocabulary is not None and vocabulary.supports_restriction

    def should_include_channels(self, provider: str, channels: Iterable[str] | None) -> bool:
        return self.supports_channels(provider) and bool(channels)

    @staticmethod
    def get_unified_channels() -> list[str]:
        return PaymentChannel.values()
