# Application modules
from txsso.exceptions import InvalidTicket
from txsso.factory import TicketFactory
from txsso.in_memory_ticket_store import InMemoryTicketStore
from txsso.interface import ITicketStore
from txsso.test.fakes import make_config
from txsso.tickets import (
    LoginTicket, TicketGrantingTicket, ServiceTicket, ProxyGrantingTicket,
    ProxyTicket, ticket_kind)
# External modules
from twisted.internet import task
from twisted.trial.unittest import TestCase
from zope.interface.verify import verifyObject


class TicketKindTest(TestCase):

    def test_prefixes(self):
        self.assertIs(ticket_kind('LT-abc'), LoginTicket)
        self.assertIs(ticket_kind('TGT-abc'), TicketGrantingTicket)
        self.assertIs(ticket_kind('ST-abc'), ServiceTicket)
        self.assertIs(ticket_kind('PGT-abc'), ProxyGrantingTicket)
        self.assertIs(ticket_kind('PT-abc'), ProxyTicket)

    def test_unknown(self):
        self.assertIs(ticket_kind(''), None)
        self.assertIs(ticket_kind(None), None)
        self.assertIs(ticket_kind('XX-abc'), None)
        self.assertIs(ticket_kind('PGTIOU-abc'), None)


class InMemoryTicketStoreTest(TestCase):
    """
    Test the in-memory ticket store.
    """
    service = "http://service.example.net/theservice"
    pgturl = "http://service.example.net/pgtcallback"
    avatar_id = "jane.smith"

    def setUp(self):
        self.clock = task.Clock()
        self.config = make_config()
        self.store = InMemoryTicketStore(reactor=self.clock)
        self.factory = TicketFactory(self.store, self.config, reactor=self.clock)

    def makePGT(self, tgt=None):
        if tgt is None:
            tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        st = self.factory.issueServiceTicket(self.service, self.avatar_id, tgt)
        pgt_id = self.factory.generateId('PGT-')
        iou = self.factory.generateId('PGTIOU-')
        pgt = self.factory.storeProxyGrantingTicket(pgt_id, iou, self.pgturl, st)
        return tgt, st, pgt

    def test_interface(self):
        self.assertTrue(verifyObject(ITicketStore, self.store))

    def test_add_collision(self):
        lt = LoginTicket('LT-1', 0, 10)
        self.assertTrue(self.store.add(lt))
        self.assertFalse(self.store.add(LoginTicket('LT-1', 0, 10)))
        self.assertIs(self.store.get('LT-1'), lt)

    def test_get_kind(self):
        lt = self.factory.issueLoginTicket()
        self.assertIs(self.store.get(lt.id, LoginTicket), lt)
        self.assertIs(self.store.get(lt.id, ServiceTicket), None)

    def test_get_expired(self):
        lt = self.factory.issueLoginTicket()
        self.clock.advance(self.config.lt_lifespan)
        self.assertIs(self.store.get(lt.id), None)
        self.assertIs(self.store.get(lt.id, include_expired=True), lt)

    def test_consume(self):
        lt = self.factory.issueLoginTicket()
        self.assertIs(self.store.consume(lt.id, LoginTicket), lt)
        self.assertTrue(lt.consumed)
        self.assertRaises(InvalidTicket, self.store.consume, lt.id, LoginTicket)

    def test_consume_wrong_kind(self):
        lt = self.factory.issueLoginTicket()
        self.assertRaises(InvalidTicket, self.store.consume, lt.id, ServiceTicket)
        self.assertFalse(lt.consumed)

    def test_consume_expired(self):
        lt = self.factory.issueLoginTicket()
        self.clock.advance(self.config.lt_lifespan)
        self.assertRaises(InvalidTicket, self.store.consume, lt.id, LoginTicket)

    def test_consume_check_fails(self):
        """
        If the check refuses the ticket it stays unconsumed.
        """
        lt = self.factory.issueLoginTicket()

        def check(ticket):
            raise ValueError("no")

        self.assertRaises(ValueError, self.store.consume, lt.id, LoginTicket, check)
        self.assertFalse(lt.consumed)
        self.store.consume(lt.id, LoginTicket)

    def test_consume_callback(self):
        calls = []
        self.store.register_ticket_expiration_callback(
            lambda ticket, explicit: calls.append((ticket.id, explicit)))
        lt = self.factory.issueLoginTicket()
        self.store.consume(lt.id, LoginTicket)
        self.assertEqual(calls, [(lt.id, True)])

    def test_find_skips_expired(self):
        lt = self.factory.issueLoginTicket()
        tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        self.clock.advance(self.config.lt_lifespan)
        found = self.store.find(lambda t: True)
        self.assertEqual(found, [tgt])
        self.assertNotIn(lt, found)

    def test_transaction_rollback(self):
        tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        lt = self.factory.issueLoginTicket()

        def txn():
            with self.store.transaction():
                self.store.delete(tgt.id)
                self.store.consume(lt.id, LoginTicket)
                self.store.add(LoginTicket('LT-new', 0, 10))
                raise RuntimeError("store went away")

        self.assertRaises(RuntimeError, txn)
        self.assertIs(self.store.get(tgt.id), tgt)
        self.assertFalse(lt.consumed)
        self.assertIs(self.store.get('LT-new'), None)

    def test_transaction_commit(self):
        tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        with self.store.transaction():
            self.store.delete(tgt.id)
        self.assertIs(self.store.get(tgt.id), None)

    def test_reap_expired(self):
        expired = []
        self.store.register_ticket_expiration_callback(
            lambda ticket, explicit: expired.append((ticket.id, explicit)))
        lt = self.factory.issueLoginTicket()
        tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        self.clock.advance(self.config.lt_lifespan)
        removed = self.store.reap_expired()
        self.assertEqual([t.id for t in removed], [lt.id])
        self.assertEqual(expired, [(lt.id, False)])
        self.assertIs(self.store.get(lt.id, include_expired=True), None)
        self.assertIs(self.store.get(tgt.id), tgt)

    def test_reap_pgt_with_tgt(self):
        """
        A PGT goes when its TGT times out, even if it has time left.
        """
        self.config.pgt_lifespan = self.config.tgt_lifespan * 2
        tgt, st, pgt = self.makePGT()
        self.clock.advance(self.config.tgt_lifespan)
        removed = set(t.id for t in self.store.reap_expired())
        self.assertIn(tgt.id, removed)
        self.assertIn(pgt.id, removed)
        self.assertIn(st.id, removed)
        self.assertIs(self.store.get(pgt.id, include_expired=True), None)

    def test_reap_keeps_ancestors_of_live_pgt(self):
        """
        The ST a live PGT was granted by stays so its chain can be walked.
        """
        tgt, st, pgt = self.makePGT()
        self.clock.advance(self.config.st_lifespan)
        removed = set(t.id for t in self.store.reap_expired())
        self.assertNotIn(st.id, removed)
        self.assertIs(self.store.get(st.id, include_expired=True), st)
        self.assertIs(self.store.get(pgt.id), pgt)

    def test_reaper_schedule(self):
        lt = self.factory.issueLoginTicket()
        self.store.start_reaping(self.config.lt_lifespan)
        self.clock.advance(self.config.lt_lifespan)
        self.assertIs(self.store.get(lt.id, include_expired=True), None)
        self.assertEqual(len(self.clock.getDelayedCalls()), 1)
        self.store.stop_reaping()
        self.assertEqual(len(self.clock.getDelayedCalls()), 0)
