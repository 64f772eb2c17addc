"""Django models backing the record store collections."""

from django.db import models


class Block(models.Model):
    """A fully ingested block; its presence marks the block as processed."""

    block_num = models.PositiveBigIntegerField(primary_key=True)
    block_hash = models.CharField(max_length=66, db_index=True)
    block_parent_hash = models.CharField(max_length=66, blank=True)
    extrinsics = models.JSONField(default=list)

    class Meta:
        db_table = "blocks"
        ordering = ["-block_num"]

    def __str__(self) -> str:
        return f"#{self.block_num} {self.block_hash}"


class Event(models.Model):
    block = models.PositiveBigIntegerField(db_index=True)
    extrinsic_index = models.PositiveIntegerField(null=True, blank=True)
    section = models.CharField(max_length=64)
    method = models.CharField(max_length=64)
    data_hash = models.PositiveBigIntegerField(help_text="CRC32 of the canonical JSON payload")
    data = models.JSONField(default=list)

    class Meta:
        db_table = "events"
        ordering = ["-block", "extrinsic_index"]
        constraints = [
            models.UniqueConstraint(
                fields=["block", "extrinsic_index", "section", "method", "data_hash"],
                name="unique_event_occurrence",
            ),
        ]
        indexes = [
            models.Index(fields=["section", "method"], name="events_section_method_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.section}.{self.method} @ {self.block}:{self.extrinsic_index}"


class Transfer(models.Model):
    signer = models.CharField(max_length=64, null=True, blank=True)
    nonce = models.PositiveBigIntegerField(null=True, blank=True)
    src = models.CharField(max_length=64, blank=True, db_index=True)
    dst = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    # Balances exceed 64 bits, kept as decimal strings.
    amount = models.CharField(max_length=48)
    block = models.PositiveBigIntegerField(db_index=True)
    extrinsic_index = models.PositiveIntegerField()
    ts = models.PositiveBigIntegerField(null=True, blank=True, help_text="Block timestamp in milliseconds")

    class Meta:
        db_table = "transfers"
        ordering = ["-block", "-extrinsic_index"]
        constraints = [
            models.UniqueConstraint(fields=["signer", "nonce"], name="unique_transfer_signer_nonce"),
        ]

    def __str__(self) -> str:
        return f"{self.src} -> {self.dst}: {self.amount} @ {self.block}"


class Account(models.Model):
    address = models.CharField(max_length=64, primary_key=True)
    balance = models.JSONField(default=dict)
    created_at_block = models.PositiveBigIntegerField(null=True, blank=True)
    created_ts = models.PositiveBigIntegerField(null=True, blank=True)
    identity = models.JSONField(null=True, blank=True)

    class Meta:
        db_table = "accounts"
        ordering = ["address"]

    def __str__(self) -> str:
        return self.address


class StakingTx(models.Model):
    stash = models.CharField(max_length=64, db_index=True)
    block = models.PositiveBigIntegerField()
    extrinsic_index = models.PositiveIntegerField(null=True, blank=True)
    event_index = models.PositiveIntegerField()
    kind = models.CharField(max_length=32)
    amount = models.CharField(max_length=48)
    ts = models.PositiveBigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "staking_txs"
        ordering = ["-block", "event_index"]
        constraints = [
            models.UniqueConstraint(
                fields=["stash", "block", "extrinsic_index", "event_index"],
                name="unique_staking_tx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.stash}: {self.amount} @ {self.block}"


class ChainStats(models.Model):
    key = models.CharField(max_length=32, primary_key=True)
    era = models.PositiveBigIntegerField(null=True, blank=True)
    session = models.PositiveBigIntegerField(default=0)
    validators = models.JSONField(default=list)
    finalized_block_count = models.PositiveBigIntegerField(default=0)

    class Meta:
        db_table = "metadata"
        verbose_name_plural = "chain stats"

    def __str__(self) -> str:
        return f"{self.key}: era {self.era}, session {self.session}"


class ProcessedMarker(models.Model):
    """Resume points, e.g. the `last_block` cursor of the backfill sequencer."""

    key = models.CharField(max_length=32, primary_key=True)
    value = models.JSONField(null=True)

    class Meta:
        db_table = "processed"

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"
