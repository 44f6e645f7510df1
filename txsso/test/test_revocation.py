# Standard modules
import threading
# Application modules
from txsso.exceptions import InternalError, InvalidTicket
from txsso.factory import TicketFactory
from txsso.in_memory_ticket_store import InMemoryTicketStore
from txsso.revocation import RevocationCoordinator
from txsso.test.fakes import make_config
# External modules
from twisted.internet import task
from twisted.trial.unittest import TestCase


class RevocationTest(TestCase):

    service1 = "https://one.example/app"
    service2 = "https://two.example/app"
    proxied = "https://backend.example/api"
    pgturl = "https://one.example/pgtcallback"
    avatar_id = "jane.smith"

    def setUp(self):
        self.clock = task.Clock()
        self.config = make_config()
        self.store = InMemoryTicketStore(reactor=self.clock)
        self.factory = TicketFactory(self.store, self.config, reactor=self.clock)
        self.revocation = RevocationCoordinator(self.store)

    def makeSession(self):
        """
        TGT with ST1 -> PGT1 and ST2 -> PGT2.
        """
        f = self.factory
        tgt = f.issueTicketGrantingTicket(self.avatar_id)
        st1 = f.issueServiceTicket(self.service1, self.avatar_id, tgt)
        st2 = f.issueServiceTicket(self.service2, self.avatar_id, tgt)
        pgt1 = f.storeProxyGrantingTicket(
            f.generateId('PGT-'), f.generateId('PGTIOU-'), self.pgturl, st1)
        pgt2 = f.storeProxyGrantingTicket(
            f.generateId('PGT-'), f.generateId('PGTIOU-'), self.pgturl, st2)
        return tgt, pgt1, pgt2

    def test_cascade(self):
        tgt, pgt1, pgt2 = self.makeSession()
        pt = self.factory.issueProxyTicket(self.proxied, pgt1.id)
        destroyed = self.revocation.revoke(tgt.id)
        self.assertEqual(
            set(destroyed), set([tgt.id, pgt1.id, pgt2.id, pt.id]))
        for ticket_id in (tgt.id, pgt1.id, pgt2.id, pt.id):
            self.assertIs(self.store.get(ticket_id, include_expired=True), None)
        self.assertRaises(
            InvalidTicket, self.factory.issueProxyTicket, self.proxied, pgt1.id)

    def test_unknown_tgt(self):
        self.assertEqual(self.revocation.revoke("TGT-nope"), [])
        tgt, pgt1, pgt2 = self.makeSession()
        self.revocation.revoke(tgt.id)
        self.assertEqual(self.revocation.revoke(tgt.id), [])

    def test_expired_tgt(self):
        tgt = self.factory.issueTicketGrantingTicket(self.avatar_id)
        self.clock.advance(self.config.tgt_lifespan)
        self.assertEqual(self.revocation.revoke(tgt.id), [tgt.id])

    def test_other_session_untouched(self):
        """
        Another session of the same user keeps its PGTs.
        """
        tgt, pgt1, pgt2 = self.makeSession()
        other_tgt, other_pgt1, other_pgt2 = self.makeSession()
        self.revocation.revoke(tgt.id)
        self.assertIs(self.store.get(other_tgt.id), other_tgt)
        self.assertIs(self.store.get(other_pgt1.id), other_pgt1)
        self.assertIs(self.store.get(other_pgt2.id), other_pgt2)

    def test_rollback(self):
        tgt, pgt1, pgt2 = self.makeSession()
        real_delete = self.store.delete
        deleted = []

        def flaky_delete(ticket_id):
            if deleted:
                raise RuntimeError("store went away")
            deleted.append(ticket_id)
            return real_delete(ticket_id)

        self.patch(self.store, 'delete', flaky_delete)
        self.assertRaises(InternalError, self.revocation.revoke, tgt.id)
        self.assertEqual(len(self.flushLoggedErrors(RuntimeError)), 1)
        self.assertEqual(len(deleted), 1)
        for ticket in (tgt, pgt1, pgt2):
            self.assertIs(self.store.get(ticket.id), ticket)

    def test_concurrent_proxy_ticket(self):
        """
        Minting a PT while the session is revoked either succeeds before
        the revocation (and the PT is destroyed with it) or fails.
        """
        tgt, pgt1, pgt2 = self.makeSession()
        count = 8
        barrier = threading.Barrier(count + 1)
        minted = []
        refused = []
        lock = threading.Lock()

        def mint():
            barrier.wait()
            try:
                pt = self.factory.issueProxyTicket(self.proxied, pgt1.id)
            except InvalidTicket:
                with lock:
                    refused.append(None)
            else:
                with lock:
                    minted.append(pt)

        threads = [threading.Thread(target=mint) for n in range(count)]
        for t in threads:
            t.start()
        barrier.wait()
        destroyed = self.revocation.revoke(tgt.id)
        for t in threads:
            t.join()
        self.assertEqual(len(minted) + len(refused), count)
        for pt in minted:
            self.assertIn(pt.id, destroyed)
            self.assertIs(self.store.get(pt.id), None)
        self.assertIs(self.store.get(pgt1.id, include_expired=True), None)
